from typing import Dict, List, Mapping
from ramen.types.base import BaseModel
from ramen.utils.errors import SelectorError

IN = "In"
NOT_IN = "NotIn"
EXISTS = "Exists"
DOES_NOT_EXIST = "DoesNotExist"


class LabelSelectorRequirement(BaseModel):
    """A single `matchExpressions` entry."""

    key: str
    operator: str
    values: List[str]

    def validate(self) -> None:
        values = self.values or []
        if not self.key:
            raise SelectorError("label selector requirement has an empty key")
        if self.operator in (IN, NOT_IN):
            if not values:
                raise SelectorError(
                    f"values must be non-empty for operator `{self.operator}` (key `{self.key}`)"
                )
        elif self.operator in (EXISTS, DOES_NOT_EXIST):
            if values:
                raise SelectorError(
                    f"values must be empty for operator `{self.operator}` (key `{self.key}`)"
                )
        else:
            raise SelectorError(
                f"`{self.operator}` is not a valid label selector operator"
            )

    def matches(self, labels: Mapping[str, str]) -> bool:
        self.validate()
        values = self.values or []
        if self.operator == IN:
            return self.key in labels and labels[self.key] in values
        if self.operator == NOT_IN:
            return self.key not in labels or labels[self.key] not in values
        if self.operator == EXISTS:
            return self.key in labels
        return self.key not in labels

    def as_str(self) -> str:
        self.validate()
        values = ",".join(sorted(self.values or []))
        if self.operator == IN:
            return f"{self.key} in ({values})"
        if self.operator == NOT_IN:
            return f"{self.key} notin ({values})"
        if self.operator == EXISTS:
            return self.key
        return f"!{self.key}"


class LabelSelector(BaseModel):
    """Kubernetes label selector.

    An empty selector matches every object.
    """

    match_labels: Dict[str, str]
    match_expressions: List[LabelSelectorRequirement]

    def requirements(self) -> List[LabelSelectorRequirement]:
        reqs = [
            LabelSelectorRequirement(key=k, operator=IN, values=[v])
            for k, v in sorted((self.match_labels or {}).items())
        ]
        reqs.extend(self.match_expressions or [])
        return reqs

    def matches(self, labels: Mapping[str, str]) -> bool:
        """Evaluate the selector against a set of labels.

        Raises:
            SelectorError: if any requirement is malformed.
        """
        labels = labels or {}
        reqs = self.requirements()
        for req in reqs:
            req.validate()
        return all(req.matches(labels) for req in reqs)

    def as_str(self) -> str:
        """Return the selector in the API server's label selector syntax."""
        return ",".join(req.as_str() for req in self.requirements())

    @classmethod
    def empty(cls) -> "LabelSelector":
        return cls(match_labels={}, match_expressions=[])
