"""
Build module for SRPM and RPM pipelines
"""

from .artifact_manager import ArtifactManager
from .build_tracker import BuildTracker, StagedPipeline
from .mock_cfg import MockCfgBuilder, MockCfgTemplate
from .srpm_builder import SrpmBuilder
from .mock_builder import MockBuilder

__all__ = [
    'ArtifactManager',
    'BuildTracker',
    'StagedPipeline',
    'MockCfgBuilder',
    'MockCfgTemplate',
    'SrpmBuilder',
    'MockBuilder',
]
