from typing import Dict, List, Optional

from stasher.types.models.backup_policy import LabelSelector, LabelSelectorRequirement

IN = "In"
NOT_IN = "NotIn"
EXISTS = "Exists"
DOES_NOT_EXIST = "DoesNotExist"
OPERATORS = (IN, NOT_IN, EXISTS, DOES_NOT_EXIST)


def requirement_matches(
    requirement: LabelSelectorRequirement, labels: Dict[str, str]
) -> bool:
    present = requirement.key in labels
    values = requirement.values or []
    if requirement.operator == IN:
        return present and labels[requirement.key] in values
    if requirement.operator == NOT_IN:
        return not present or labels[requirement.key] not in values
    if requirement.operator == EXISTS:
        return present
    if requirement.operator == DOES_NOT_EXIST:
        return not present
    return False


def selector_matches(
    selector: Optional[LabelSelector], labels: Optional[Dict[str, str]]
) -> bool:
    """Return True when `labels` satisfy every term of `selector`.

    A missing or empty selector matches nothing; the schema refuses empty
    selectors so a policy can never select every workload of a namespace.
    """
    if selector is None:
        return False
    match_labels = selector.match_labels or {}
    expressions: List[LabelSelectorRequirement] = selector.match_expressions or []
    if not match_labels and not expressions:
        return False
    labels = labels or {}
    for key, value in match_labels.items():
        if labels.get(key) != value:
            return False
    return all(requirement_matches(r, labels) for r in expressions)


def selector_as_str(selector: LabelSelector) -> str:
    """Render a selector in the `label_selector` query string format."""
    terms = [f"{k}={v}" for k, v in (selector.match_labels or {}).items()]
    for r in selector.match_expressions or []:
        if r.operator == IN:
            terms.append(f"{r.key} in ({','.join(r.values or [])})")
        elif r.operator == NOT_IN:
            terms.append(f"{r.key} notin ({','.join(r.values or [])})")
        elif r.operator == EXISTS:
            terms.append(r.key)
        elif r.operator == DOES_NOT_EXIST:
            terms.append(f"!{r.key}")
    return ",".join(terms)
