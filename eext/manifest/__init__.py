"""
Manifest (eext.yaml) loading
"""

from .manifest import Manifest, Package, load_manifest, parse_manifest

__all__ = ['Manifest', 'Package', 'load_manifest', 'parse_manifest']
