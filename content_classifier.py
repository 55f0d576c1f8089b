"""
Decides whether an archive's file listing is a supported mod for a game.

A listing is supported by a variant when some entry matches the variant's
anchor rule and none of its exclusion rules fire.  The first matching entry in
list order is the anchor; archives with several candidate roots are not
modelled beyond that tie-break.
"""

from __future__ import annotations

import logging
from typing import Iterable, Sequence

from installer_schema import AnchorRule, ExclusionRule, InstallerVariant, SupportResult

_log = logging.getLogger(__name__)


def find_anchor(files: Iterable[str], rule: AnchorRule) -> str | None:
    for entry in files:
        if rule.matches(entry):
            return entry
    return None


def find_exclusion(
    files: Iterable[str], exclusions: Sequence[ExclusionRule]
) -> tuple[ExclusionRule, str] | None:
    if not exclusions:
        return None
    for entry in files:
        for rule in exclusions:
            if rule.matches(entry):
                return rule, entry
    return None


class ContentClassifier:
    """Classifier for one (game, variant) pair.  Holds no per-call state."""

    def __init__(self, game_id: str, variant: InstallerVariant):
        self.game_id = game_id
        self.variant = variant

    def find_anchor(self, files: Sequence[str]) -> str | None:
        anchor = find_anchor(files, self.variant.anchor)
        if anchor is None:
            return None
        excluded = find_exclusion(files, self.variant.exclusions)
        if excluded is not None:
            rule, entry = excluded
            _log.debug(
                "%s: %s disqualified by %s/%s",
                self.variant.id, entry, rule.parent, rule.basename,
            )
            return None
        return anchor

    def test(self, files: Sequence[str], game_id: str) -> SupportResult:
        if game_id != self.game_id:
            return SupportResult(supported=False)
        return SupportResult(supported=self.find_anchor(files) is not None)
