"""
Configuration defaults for the eext RPM rebuild tool
=================================================================================
PURPOSE: Centralized defaults for the rebuild pipeline. Every value here can be
         overridden by an EEXT_<KEY> environment variable or by the YAML
         settings file (see eext.common.config_loader).

ORGANIZATION:
1. Directory layout
2. Bundle configuration files and hosts
3. Signing material
4. Build constants
"""

# ==============================================================================
# 1. DIRECTORY LAYOUT
# ==============================================================================

# SRC_DIR: Base directory holding cloned package repositories.
# Empty means a single repository checked out in the current directory.
SRC_DIR = ""

# WORKING_DIR: Scratch area, one subdirectory per package
WORKING_DIR = "/var/eext"

# DEST_DIR: Published artifacts land in <DEST_DIR>/SRPMS and <DEST_DIR>/RPMS
DEST_DIR = "/dest"

# DEPS_DIR: Prebuilt RPMs for local build dependencies, laid out as <arch>/<pkg>/
DEPS_DIR = "/RPMS"

# SRPMS_DIR: Colon separated list of directories searched for <pkg>/*.src.rpm
# before a binary build. Empty means <DEST_DIR>/SRPMS.
SRPMS_DIR = ""

# ==============================================================================
# 2. BUNDLE CONFIGURATION FILES AND HOSTS
# ==============================================================================

MOCK_CFG_TEMPLATE = "/usr/share/eext/mock.cfg.template"

DNF_CONFIG_FILE = "/usr/share/eext/dnfconfig.yaml"
DNF_REPO_HOST = "http://artifactory.example.com"

SRC_CONFIG_FILE = "/usr/share/eext/srcconfig.yaml"
SRC_REPO_HOST = "http://artifactory.example.com"
SRC_REPO_PATH_PREFIX = "artifactory/eext-sources"

# SRC_ENV_PREFIX: SRC_0, SRC_1, ... carry "<name>#<commit-hash>" entries used
# to derive the release macro and the build signature
SRC_ENV_PREFIX = "SRC_"

# ==============================================================================
# 3. SIGNING MATERIAL
# ==============================================================================

# PKI_PATH/rpmkeys/*.pem are imported into the rpmdb before any build.
# PKI_PATH/trustedDetachedSigners/<key> hold keys for detached signatures.
PKI_PATH = "/etc/pki/eext"
RPM_KEYS_SUBDIR = "rpmkeys"
DETACHED_SIGNERS_SUBDIR = "trustedDetachedSigners"

# Substring `rpm -K` prints for a correctly signed package
RPM_SIGNATURE_OK_PHRASE = "digests signatures OK"

# ==============================================================================
# 4. BUILD CONSTANTS
# ==============================================================================

ALLOWED_ARCHES = ["i686", "x86_64", "aarch64"]
ALLOWED_PKG_TYPES = ["srpm", "unmodified-srpm", "tarball", "standalone"]
SRPM_PKG_TYPES = ["srpm", "unmodified-srpm"]

MANIFEST_FILENAME = "eext.yaml"

# Priority 1 is reserved for the local-deps repo generated per build
REPO_HIGH_PRIORITY = 1
LOCAL_DEPS_REPO_NAME = "local-deps"

# Appended to the upstream Release: line of unmodified-srpm packages
RELEASE_SUFFIX_MACRO = ".%{?eext_release:%{eext_release}}%{!?eext_release:eng}"

# Archive produced from git upstream sources; spec files must reference it
GIT_ARCHIVE_FILENAME = "Source0.tar.gz"

# Timeout (seconds) for a single HTTP download; None waits until the server closes
DOWNLOAD_TIMEOUT = None

# Settings files searched when --config is not given
SETTINGS_SEARCH_PATHS = [
    "~/.config/eext-config.yaml",
    "/etc/eext/eext-config.yaml",
]
ENV_PREFIX = "EEXT_"
