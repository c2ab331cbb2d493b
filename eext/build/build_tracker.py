"""
Build Tracker Module - Tracks pipeline progress and statistics
"""

import time
import logging
from typing import Callable, List, Optional, TypeVar

from eext.common.errors import EextError, PipelineIdentity, StageError
from eext.common.logging_utils import StageLogger

logger = logging.getLogger(__name__)

T = TypeVar("T")


class BuildTracker:
    """Tracks which packages were built or failed during one invocation"""

    def __init__(self):
        self.built_packages: List[str] = []
        self.failed_packages: List[str] = []
        self.stats = {
            "srpm_success": 0,
            "rpm_success": 0,
            "failed": 0,
        }
        self.start_time = time.time()

    def record_built_package(self, identity: PipelineIdentity, kind: str):
        self.built_packages.append(identity.name)
        self.stats[f"{kind}_success"] += 1
        logger.info(f"PKG_DONE builder={identity.builder} pkg={identity.name}")

    def record_failed_package(self, identity: PipelineIdentity, stage: str):
        self.failed_packages.append(identity.name)
        self.stats["failed"] += 1
        logger.error(f"PKG_FAILED builder={identity.builder} pkg={identity.name} stage={stage}")

    def get_elapsed_time(self) -> float:
        return time.time() - self.start_time

    def summary(self) -> str:
        return (f"BUILD_SUMMARY srpms={self.stats['srpm_success']} rpms={self.stats['rpm_success']} "
                f"failed={self.stats['failed']} elapsed={self.get_elapsed_time():.1f}s")


class StagedPipeline:
    """
    Base for builders that run labelled stages in order.

    The identity is fixed for the builder's lifetime; the stage tag is passed
    to each call. Any EextError raised inside a stage is re-raised as a
    StageError carrying identity and stage.
    """

    kind = ""

    def __init__(self, identity: PipelineIdentity, tracker: Optional[BuildTracker] = None):
        self.identity = identity
        self.tracker = tracker
        self.log = StageLogger(identity, logging.getLogger(type(self).__module__))
        self.completed_stages: List[str] = []

    def run_stage(self, stage: str, func: Callable[[str], T]) -> T:
        self.log.info(stage, "starting")
        try:
            result = func(stage)
        except StageError as e:
            if self.tracker is not None:
                self.tracker.record_failed_package(self.identity, e.stage)
            raise
        except EextError as e:
            if self.tracker is not None:
                self.tracker.record_failed_package(self.identity, stage)
            raise StageError(self.identity, stage, e) from e
        self.completed_stages.append(stage)
        self.log.info(stage, "successful")
        return result

    def finish(self):
        if self.tracker is not None:
            self.tracker.record_built_package(self.identity, self.kind)
