"""Workspace filter expression evaluator.

Supports a small, case-sensitive subset of OData-style predicates joined
with ``and``:

- "state eq 'Active'" - Workspace state (discovery only returns active ones)
- "type eq 'Workspace'" - Exact match on workspace kind
- "contains(name,'Sales')" - Substring of the display name
- "startswith(name,'Prod')" - Display name prefix
- "endswith(name,'-dev')" - Display name suffix

Examples:
    WorkspaceFilter("contains(name,'Test') and type eq 'Workspace'")
    -> Matches workspaces of kind Workspace whose name contains "Test"

Every recognized predicate restricts the result. Text that is not a
recognized predicate or the conjunction fails open: it is ignored and a
warning is reported. An expression with no recognized predicate matches
every workspace, so a typo never archives nothing.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Iterable, Optional

from ..types.archive import Workspace

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FilterClause:
    """A single parsed predicate."""

    field: str  # "state", "type" or "name"
    operator: str  # "eq", "contains", "startswith", "endswith"
    value: str

    def matches(self, workspace: Workspace) -> bool:
        if self.field == "state":
            return workspace.state == self.value
        if self.field == "type":
            return workspace.kind == self.value

        name = workspace.display_name
        if self.operator == "contains":
            return self.value in name
        if self.operator == "startswith":
            return name.startswith(self.value)
        if self.operator == "endswith":
            return name.endswith(self.value)
        return False

    def __str__(self) -> str:
        if self.operator == "eq":
            return f"{self.field} eq '{self.value}'"
        return f"{self.operator}({self.field},'{self.value}')"


@dataclass
class FilterResult:
    """Outcome of applying a filter to a workspace listing."""

    workspaces: list[Workspace] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    fail_open: bool = False


class WorkspaceFilter:
    """Parses a filter expression once and tests workspaces against it.

    Each recognized predicate is found on its own and the matches are
    intersected. Text between predicates other than the conjunction is
    reported and ignored, so it never narrows the result.
    """

    PREDICATE_PATTERN = re.compile(
        r"\b(?P<field>state|type)\s+eq\s+'(?P<eq_value>[^']*)'"
        r"|\b(?P<function>contains|startswith|endswith)\(\s*name\s*,\s*'(?P<name_value>[^']*)'\s*\)"
    )
    CONJUNCTION = "and"

    def __init__(self, expression: Optional[str] = None):
        self.expression = (expression or "").strip()
        self.clauses: list[FilterClause] = []
        self.warnings: list[str] = []
        self.fail_open = False
        self._parse()

    @property
    def is_empty(self) -> bool:
        """True when no clause restricts the result."""
        return not self.clauses

    def matches(self, workspace: Workspace) -> bool:
        """Check a single workspace against every clause."""
        return all(clause.matches(workspace) for clause in self.clauses)

    def apply(self, workspaces: Iterable[Workspace]) -> FilterResult:
        """Filter a workspace listing.

        Args:
            workspaces: Workspaces returned by discovery.

        Returns:
            FilterResult with the surviving workspaces, in input order, and
            any parse warnings.
        """
        matched = [ws for ws in workspaces if self.matches(ws)]
        return FilterResult(
            workspaces=matched,
            warnings=list(self.warnings),
            fail_open=self.fail_open,
        )

    def _parse(self) -> None:
        if not self.expression:
            return

        position = 0
        for match in self.PREDICATE_PATTERN.finditer(self.expression):
            clause = self._clause(match)
            gap = self.expression[position:match.start()].strip()
            expected = self.CONJUNCTION if self.clauses else ""

            if gap != expected:
                if gap:
                    self._ignore(gap)
                else:
                    self._ignore(f"missing '{self.CONJUNCTION}' before {clause}")

            self.clauses.append(clause)
            position = match.end()

        if not self.clauses:
            self._fail_open(
                f"Workspace filter '{self.expression}' has no recognized clause; "
                f"matching all workspaces"
            )
            return

        trailing = self.expression[position:].strip()
        if trailing:
            self._ignore(trailing)

    def _clause(self, match: re.Match) -> FilterClause:
        if match.group("field"):
            return FilterClause(
                field=match.group("field"), operator="eq", value=match.group("eq_value")
            )
        return FilterClause(
            field="name", operator=match.group("function"), value=match.group("name_value")
        )

    def _ignore(self, text: str) -> None:
        self._fail_open(
            f"Workspace filter text '{text}' is not recognized; "
            f"it does not restrict the result"
        )

    def _fail_open(self, message: str) -> None:
        self.fail_open = True
        self.warnings.append(message)
        logger.warning(message)


def filter_workspaces(
    workspaces: Iterable[Workspace],
    expression: Optional[str],
) -> FilterResult:
    """Apply a filter expression to a workspace listing.

    Args:
        workspaces: Workspaces to test.
        expression: Filter expression, empty for no filtering.

    Returns:
        FilterResult with matching workspaces and warnings.
    """
    return WorkspaceFilter(expression).apply(workspaces)
