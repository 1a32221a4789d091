"""
Selects and owns the native engine variant.

Candidates are tried in priority order; a variant that fails to load is
logged and skipped. The first variant that loads is cached until release()
or reload(). A variant that imports but cannot build a recognizer is
rejected by the engine and skipped from then on. At most one variant is resident at any time.
"""

import threading
from typing import List, Optional

from ...utils.logger import get_logger
from ..errors import EngineLoadFailure, LoadFailureKind, NoEngineAvailable
from .bindings import (
    BindingLoader,
    EngineCandidate,
    LoadedEngine,
    import_binding,
)

logger = get_logger(__name__)


class BindingResolver:
    def __init__(
        self,
        candidates: List[EngineCandidate],
        loader: BindingLoader = import_binding,
    ):
        self._candidates = sorted(candidates, key=lambda c: c.priority)
        self._loader = loader
        self._loaded: Optional[LoadedEngine] = None
        self._failures: List[EngineLoadFailure] = []
        self._rejected: List[EngineLoadFailure] = []
        self._lock = threading.Lock()

    @property
    def candidates(self) -> List[EngineCandidate]:
        return list(self._candidates)

    @property
    def loaded(self) -> Optional[LoadedEngine]:
        return self._loaded

    @property
    def last_failures(self) -> List[EngineLoadFailure]:
        return list(self._failures)

    def resolve(self, allow_accelerated: bool = True) -> LoadedEngine:
        """
        Return the active engine variant, loading one if needed.

        Raises:
            NoEngineAvailable: If every eligible candidate failed to load.
        """
        with self._lock:
            if self._loaded is not None:
                if not allow_accelerated and self._loaded.candidate.is_accelerated:
                    logger.warning(
                        f"Accelerated engine '{self._loaded.candidate.name}' is "
                        "already loaded; call reload() to switch to a CPU variant"
                    )
                return self._loaded
            self._loaded = self._resolve_locked(allow_accelerated)
            return self._loaded

    def reload(self, allow_accelerated: bool = True) -> LoadedEngine:
        """Release the active variant and resolve again, retrying rejected ones."""
        with self._lock:
            self._rejected = []
            self._release_locked()
            self._loaded = self._resolve_locked(allow_accelerated)
            return self._loaded

    def release(self) -> None:
        with self._lock:
            self._release_locked()

    def reject(self, failure: EngineLoadFailure) -> None:
        """
        Mark a variant unusable after it imported but could not run.

        The variant is released if active and skipped by later resolves
        until reload().
        """
        with self._lock:
            logger.warning(
                f"Engine variant '{failure.candidate.name}' rejected "
                f"({failure.kind.value}): {failure.detail}"
            )
            if (
                self._loaded is not None
                and self._loaded.candidate.name == failure.candidate.name
            ):
                self._release_locked()
            if all(r.candidate.name != failure.candidate.name for r in self._rejected):
                self._rejected.append(failure)

    def binding_info(self) -> Optional[dict]:
        loaded = self._loaded
        if loaded is None:
            return None
        return {
            "name": loaded.candidate.name,
            "type": loaded.candidate.variant_tag,
            "module": loaded.candidate.module,
        }

    def _resolve_locked(self, allow_accelerated: bool) -> LoadedEngine:
        rejected = {r.candidate.name for r in self._rejected}
        eligible = [
            c
            for c in self._candidates
            if (allow_accelerated or not c.is_accelerated) and c.name not in rejected
        ]
        failures: List[EngineLoadFailure] = list(self._rejected)

        for candidate in eligible:
            logger.info(
                f"Trying engine variant '{candidate.name}' ({candidate.variant_tag})"
            )
            try:
                handle = self._loader(candidate)
            except EngineLoadFailure as e:
                failure = e
            except Exception as e:
                failure = EngineLoadFailure(candidate, LoadFailureKind.UNKNOWN, str(e))
            else:
                logger.info(f"Loaded engine variant '{candidate.name}'")
                self._failures = failures
                return LoadedEngine(candidate=candidate, handle=handle)

            logger.warning(
                f"Engine variant '{candidate.name}' failed to load "
                f"({failure.kind.value}): {failure.detail}"
            )
            failures.append(failure)

        self._failures = failures
        logger.error(
            f"No engine variant could be loaded ({len(eligible)} candidates tried)"
        )
        raise NoEngineAvailable(failures)

    def _release_locked(self) -> None:
        if self._loaded is None:
            return
        logger.info(f"Releasing engine variant '{self._loaded.candidate.name}'")
        self._loaded.handle.release()
        self._loaded = None
