import json
from pathlib import Path
from types import MappingProxyType
from typing import Optional, Dict, Any, List, Mapping

from ..core.models import Category
from ..utils.log import log_line

class CategoryTaxonomy:
    """
    Immutable three-level category taxonomy (major -> sub -> leaf).

    Built from a nested mapping:

        {
          "Celebrations, Entertainment & Gatherings": {
            "Holidays & Cultural Celebrations": [
              "Fireworks (legal displays)",
              "Fireworks (illegal / residential)"
            ]
          }
        }

    Every leaf resolves to exactly one (major, sub) pair; a leaf listed twice
    is rejected. Lookups are exact first, then case-insensitive.
    """
    def __init__(self, data: Mapping[str, Mapping[str, List[str]]]):
        by_leaf: Dict[str, Category] = {}
        by_folded: Dict[str, Category] = {}
        for major, subs in (data or {}).items():
            if not isinstance(subs, Mapping):
                raise ValueError(f"taxonomy major {major!r} must map sub-categories to leaves")
            for sub, leaves in subs.items():
                for leaf in leaves or []:
                    leaf = str(leaf).strip()
                    if not leaf:
                        continue
                    folded = leaf.casefold()
                    if folded in by_folded:
                        prev = by_folded[folded]
                        raise ValueError(
                            f"leaf {leaf!r} listed twice ({prev.major} / {prev.sub} and {major} / {sub})"
                        )
                    cat = Category(str(major), str(sub), leaf)
                    by_leaf[leaf] = cat
                    by_folded[folded] = cat
        self._by_leaf = MappingProxyType(by_leaf)
        self._by_folded = MappingProxyType(by_folded)

    @classmethod
    def from_file(cls, path: Path) -> "CategoryTaxonomy":
        """Load taxonomy from a JSON file. Missing/unreadable file gives an empty taxonomy."""
        try:
            data = json.loads(Path(path).read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            log_line(f"TAXONOMY | load failed path={path} err={e!r}", "WARN")
            return cls({})
        return cls(data)

    def __len__(self) -> int:
        return len(self._by_leaf)

    def __contains__(self, leaf: object) -> bool:
        return isinstance(leaf, str) and self.resolve(leaf) is not None

    def resolve(self, leaf: Optional[str]) -> Optional[Category]:
        """Leaf name -> Category, or None if unknown."""
        if not leaf:
            return None
        leaf = str(leaf).strip()
        cat = self._by_leaf.get(leaf)
        if cat is None:
            cat = self._by_folded.get(leaf.casefold())
        return cat

    def is_consistent(self, category: Category) -> bool:
        """True if the (major, sub, leaf) triple matches the hierarchy."""
        cat = self.resolve(category.leaf)
        return cat is not None and cat.major == category.major and cat.sub == category.sub

    def leaves(self) -> List[str]:
        return list(self._by_leaf.keys())

    def majors(self) -> List[str]:
        seen: Dict[str, None] = {}
        for cat in self._by_leaf.values():
            seen.setdefault(cat.major, None)
        return list(seen)

    def as_dict(self) -> Dict[str, Any]:
        out: Dict[str, Dict[str, List[str]]] = {}
        for cat in self._by_leaf.values():
            out.setdefault(cat.major, {}).setdefault(cat.sub, []).append(cat.leaf)
        return out
