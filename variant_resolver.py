"""
Picks the installer variant for games with more than one mod layout.

Variants are evaluated in priority order (ties keep declaration order) and
the first one whose classifier accepts the listing wins.  A listing accepted
by several variants, e.g. an archive bundling a scene file and a loader
manifest, is ambiguous: it is logged and resolved by that same order, or
rejected outright when ``strict`` is set.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Sequence

from content_classifier import ContentClassifier
from installer_errors import AmbiguousVariant
from installer_schema import InstallerVariant

_log = logging.getLogger(__name__)


@dataclass
class VariantResolution:
    variant: InstallerVariant
    anchor: str
    candidates: list[str] = field(default_factory=list)  # ids of every matching variant

    @property
    def ambiguous(self) -> bool:
        return len(self.candidates) > 1


class VariantResolver:
    def __init__(self, game_id: str, variants: Sequence[InstallerVariant]):
        self.game_id = game_id
        ordered = sorted(variants, key=lambda v: v.priority)
        self.classifiers = [ContentClassifier(game_id, v) for v in ordered]

    @property
    def variants(self) -> list[InstallerVariant]:
        return [c.variant for c in self.classifiers]

    def resolve(self, files: Sequence[str], strict: bool = False) -> VariantResolution | None:
        matches: list[tuple[InstallerVariant, str]] = []
        for classifier in self.classifiers:
            anchor = classifier.find_anchor(files)
            if anchor is not None:
                matches.append((classifier.variant, anchor))

        if not matches:
            return None

        candidates = [variant.id for variant, _ in matches]
        if len(matches) > 1:
            if strict:
                raise AmbiguousVariant(self.game_id, candidates)
            _log.warning(
                "Archive matches several %s layouts (%s) — using %s",
                self.game_id, ", ".join(candidates), candidates[0],
            )

        variant, anchor = matches[0]
        return VariantResolution(variant=variant, anchor=anchor, candidates=candidates)
