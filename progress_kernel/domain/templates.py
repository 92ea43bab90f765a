"""
Progress template value objects and validation.

Responsibility:
    Immutable representation of a resolved template (ordered milestones with
    weight, category and partial flag) plus the pure checks every template
    must pass before it is used or activated.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - Weights of an active template total exactly 100.
    - Milestone names are unique within a template.
    - Every milestone has a known category.

Failure modes:
    - validate_* functions never raise; they return a list of issue strings.
      Callers decide whether an issue is a ConfigurationError (resolution
      time) or a TemplateIntegrityViolation (activation time).
"""

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field, replace
from decimal import Decimal, InvalidOperation
from uuid import UUID

from progress_kernel.db.types import HUNDRED, WEIGHT_DECIMAL_PLACES, ZERO
from progress_kernel.domain.categories import MilestoneCategory, category_for


@dataclass(frozen=True)
class MilestoneSpec:
    """One milestone of a template."""

    name: str
    weight: Decimal
    category: MilestoneCategory
    is_partial: bool = False
    order: int = 0

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "weight": str(self.weight),
            "category": self.category.value,
            "is_partial": self.is_partial,
            "order": self.order,
        }

    @classmethod
    def from_dict(cls, data: Mapping, order: int | None = None) -> "MilestoneSpec":
        """
        Build a spec from its stored/configured mapping form.

        Raises:
            KeyError: name or weight missing.
            ValueError: weight not numeric or category unknown.
        """
        name = data["name"]
        try:
            weight = Decimal(str(data["weight"]))
        except InvalidOperation as exc:
            raise ValueError(f"weight for '{name}' is not numeric: {data['weight']!r}") from exc

        raw_category = data.get("category")
        if raw_category is None:
            category = category_for(name)
            if category is None:
                raise ValueError(f"milestone '{name}' has no category")
        else:
            category = MilestoneCategory(raw_category)

        return cls(
            name=name,
            weight=weight,
            category=category,
            is_partial=bool(data.get("is_partial", False)),
            order=int(data.get("order", order if order is not None else 0)),
        )


@dataclass(frozen=True)
class ResolvedTemplate:
    """
    The template in force for a (work-item type, project) pair.

    milestones are ordered by their ``order`` attribute.
    """

    component_type: str
    milestones: tuple[MilestoneSpec, ...]
    template_id: UUID | None = None
    project_id: UUID | None = None
    version: int = 1
    _by_name: dict = field(default_factory=dict, init=False, repr=False, compare=False)

    def __post_init__(self):
        ordered = tuple(sorted(self.milestones, key=lambda m: m.order))
        object.__setattr__(self, "milestones", ordered)
        object.__setattr__(self, "_by_name", {m.name: m for m in ordered})

    @property
    def is_override(self) -> bool:
        return self.project_id is not None

    @property
    def names(self) -> tuple[str, ...]:
        return tuple(m.name for m in self.milestones)

    @property
    def total_weight(self) -> Decimal:
        return sum((m.weight for m in self.milestones), ZERO)

    def milestone(self, name: str) -> MilestoneSpec | None:
        return self._by_name.get(name)

    def category_weight(self, category: MilestoneCategory | str) -> Decimal:
        """Sum of weights of the milestones in a category."""
        category = MilestoneCategory(category)
        return sum(
            (m.weight for m in self.milestones if m.category == category), ZERO
        )

    def category_weights(self) -> dict[MilestoneCategory, Decimal]:
        return {category: self.category_weight(category) for category in MilestoneCategory}

    def with_weights(self, weights: Mapping[str, Decimal]) -> "ResolvedTemplate":
        """Copy of this template with new weights, keeping order and categories."""
        return ResolvedTemplate(
            component_type=self.component_type,
            milestones=tuple(
                replace(m, weight=weights[m.name]) for m in self.milestones
            ),
            template_id=None,
            project_id=self.project_id,
            version=self.version,
        )


def milestones_from_rows(rows: Iterable[Mapping]) -> tuple[MilestoneSpec, ...]:
    """Parse stored JSON milestone entries, defaulting order to position."""
    return tuple(MilestoneSpec.from_dict(row, order=i) for i, row in enumerate(rows))


WEIGHT_STEP = Decimal(1).scaleb(-WEIGHT_DECIMAL_PLACES)


def validate_template_definition(milestones: Sequence[MilestoneSpec]) -> list[str]:
    """Return the integrity issues of a milestone list (empty when valid)."""
    issues: list[str] = []
    if not milestones:
        return ["template has no milestones"]

    seen: set[str] = set()
    for m in milestones:
        if not m.name or not m.name.strip():
            issues.append("milestone name must not be blank")
        if m.name in seen:
            issues.append(f"duplicate milestone '{m.name}'")
        seen.add(m.name)
        if m.weight < ZERO or m.weight > HUNDRED:
            issues.append(f"weight of '{m.name}' must be between 0 and 100, got {m.weight}")
        elif m.weight != m.weight.quantize(WEIGHT_STEP):
            issues.append(f"weight of '{m.name}' has more than {WEIGHT_DECIMAL_PLACES} decimal places: {m.weight}")

    total = sum((m.weight for m in milestones), ZERO)
    if total != HUNDRED:
        issues.append(f"weights total {total}, expected 100")
    return issues


def normalize_weights(weights: Mapping[str, object] | Iterable[tuple[str, object]]) -> tuple[dict[str, Decimal], list[str]]:
    """
    Convert a proposed {name: weight} list to Decimals.

    Returns the parsed weights and the issues for entries that could not be
    parsed (those entries are left out of the result).
    """
    pairs = weights.items() if isinstance(weights, Mapping) else weights
    parsed: dict[str, Decimal] = {}
    issues: list[str] = []
    for name, raw in pairs:
        if name in parsed:
            issues.append(f"duplicate milestone '{name}'")
            continue
        if isinstance(raw, bool):
            issues.append(f"weight of '{name}' is not numeric: {raw!r}")
            continue
        try:
            value = Decimal(str(raw))
        except InvalidOperation:
            issues.append(f"weight of '{name}' is not numeric: {raw!r}")
            continue
        if not value.is_finite():
            issues.append(f"weight of '{name}' is not finite: {raw!r}")
            continue
        parsed[name] = value
    return parsed, issues


def validate_template_override(
    current: ResolvedTemplate,
    weights: Mapping[str, object] | Iterable[tuple[str, object]],
) -> list[str]:
    """
    Check a proposed weight list against the template it would replace.

    The override must name exactly the current milestones; categories,
    partial flags and order are kept from the current template.
    """
    parsed, issues = normalize_weights(weights)

    current_names = set(current.names)
    unknown = sorted(set(parsed) - current_names)
    missing = [name for name in current.names if name not in parsed]
    for name in unknown:
        issues.append(f"unknown milestone '{name}'")
    if missing:
        issues.append(f"missing milestones: {', '.join(missing)}")

    if issues:
        return issues

    return validate_template_definition(current.with_weights(parsed).milestones)
