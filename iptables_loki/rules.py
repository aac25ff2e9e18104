"""Firewall rule allow-list.

Only lines whose rule name exactly equals one of the configured names are
shipped. There is no prefix, substring, or case-insensitive matching.
"""

from collections.abc import Collection, Iterable

from iptables_loki.models import ParsedLine


def accept(parsed: ParsedLine, allow_set: Collection[str]) -> bool:
    return parsed.rule in allow_set


class RuleFilter:
    def __init__(self, rules: Iterable[str]):
        self._rules = frozenset(rules)

    @property
    def rules(self) -> frozenset[str]:
        return self._rules

    def accepts(self, parsed: ParsedLine) -> bool:
        return accept(parsed, self._rules)
