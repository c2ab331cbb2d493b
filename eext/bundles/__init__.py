"""
Source and dnf repo bundle configuration
"""

from .src_config import SrcConfig, SrcParams
from .dnf_config import DnfConfig, DnfRepoParams

__all__ = ['SrcConfig', 'SrcParams', 'DnfConfig', 'DnfRepoParams']
