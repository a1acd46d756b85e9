"""Constants used in the project."""

from enum import Enum


class ExitCodes(Enum):
    """Exit codes for the program.

    Args:
        Enum (int): Exit codes for the program.
    """

    SUCCESS = 0
    FILE_ERROR = 1
    INSTALL_FAILED = 2
    COMMAND_NOT_FOUND = 127
    INTERRUPTED = 130


class PackageManagers(Enum):
    """Package managers supported by the program.

    Args:
        Enum (string): Package managers supported by the program.
    """

    NPM = "npm"
    YARN = "yarn"
    PNPM = "pnpm"


# Framework and type-definition packages that commonly end up with
# conflicting peer requirements.
DEFAULT_CRITICAL_DEPENDENCIES = (
    "react",
    "react-dom",
    "@types/react",
    "@types/react-dom",
    "vue",
    "@vue/runtime-core",
    "typescript",
    "@types/node",
    "webpack",
    "@types/webpack",
    "styled-components",
    "@emotion/react",
    "next",
    "nuxt",
    "graphql",
    "@apollo/client",
    "rxjs",
    "lodash",
)

# Packages known to warn about peers the consumer often does not declare.
DEFAULT_PROBLEMATIC_PACKAGES = {
    "react-redux": {"react": "*", "redux": "*"},
    "@mui/material": {"react": "*", "react-dom": "*"},
    "styled-components": {"react": "*", "react-dom": "*"},
    "vuex": {"vue": "*"},
    "vue-router": {"vue": "*"},
    "graphql-tag": {"graphql": "*"},
}


class Constants:  # pylint: disable=too-few-public-methods
    """General constants used in the project.
    Data holder for configuration constants; not intended to provide behavior.
    """

    REGISTRY_URL_NPM = "https://registry.npmjs.org/"
    SUPPORTED_PACKAGE_MANAGERS = [
        PackageManagers.NPM.value,
        PackageManagers.YARN.value,
        PackageManagers.PNPM.value,
    ]
    PACKAGE_JSON_FILE = "package.json"
    BACKUP_SUFFIX = ".backup"
    PACKAGE_LOCK_FILE = "package-lock.json"
    YARN_LOCK_FILE = "yarn.lock"
    PNPM_LOCK_FILE = "pnpm-lock.yaml"
    PNPM_WORKSPACE_FILE = "pnpm-workspace.yaml"
    LERNA_FILE = "lerna.json"
    # Lockfile precedence used when detecting the package manager
    LOCKFILE_MANAGERS = [
        (PNPM_LOCK_FILE, PackageManagers.PNPM.value),
        (YARN_LOCK_FILE, PackageManagers.YARN.value),
        (PACKAGE_LOCK_FILE, PackageManagers.NPM.value),
    ]
    WORKSPACE_DIRS = ["packages", "apps", "libs", "components", "modules"]
    MONOREPO_DIRS = ["packages", "apps", "libs", "modules"]
    CONFIG_FILES = [
        ".peerdepsrc",
        ".peerdepsrc.yml",
        ".peerdepsrc.yaml",
        ".peerdepsrc.json",
        "peerdeps.config.json",
    ]
    LOG_FORMAT = "[%(levelname)s] %(message)s"
    LOG_LEVEL_ENV = "PEERDEPS_LOG_LEVEL"
    REQUEST_TIMEOUT = 30  # Timeout in seconds for registry requests
    HTTP_RETRY_MAX = 3
    HTTP_RETRY_BASE_DELAY_SEC = 0.3
    USER_AGENT = "peerdeps/1.0"
