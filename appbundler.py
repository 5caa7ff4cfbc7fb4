#!/usr/bin/env python3
"""appbundler - wrap a standalone executable in a macOS .app bundle.

This module provides tools for:
1. Generating the Info.plist descriptor and the launcher script of a bundle
2. Creating the canonical .app directory structure
3. Copying an executable (and an optional .icns icon) into a new bundle

Every failure point maps to a distinct ExitCode, so callers can either
catch BundlerError subclasses or work with a single outcome value.

Usage (CLI):
    # Bundle ./myapp into ./myapp.app
    appbundler -b ./myapp

    # Bundle with an icon into ./Foo.app
    appbundler -b ./myapp -i ./pic.icns -o Foo

Usage (API):
    from appbundler import BundleData, ExitCode, bundle, try_bundle

    # Raises a BundlerError subclass on failure
    bundle_path = bundle(BundleData.from_strings("/tmp/app"))

    # Returns an ExitCode instead of raising
    code = try_bundle(BundleData.from_strings("/tmp/app", icon="/tmp/pic.icns"))
    if code != ExitCode.SUCCESS:
        print(code.describe())
"""

import argparse
import datetime
import enum
import logging
import os
import shutil
import sys
from dataclasses import dataclass
from pathlib import Path
from xml.sax.saxutils import escape

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

# ----------------------------------------------------------------------------
# Constants

__version__ = "0.1.0"

# Type aliases
Pathlike = Path | str

# Bundle layout
BUNDLE_EXT = ".app"
DIR_CONTENTS = "Contents"
DIR_MACOS = "MacOS"
DIR_RESOURCES = "Resources"
FILE_INFO_PLIST = "Info.plist"
FILE_LAUNCHER = "launcher"

# Required extension of icon files (without the dot)
ICON_EXT = "icns"

# r-xr-xr--: executable by owner and group, writable by nobody
LAUNCHER_MODE = 0o554

# Launcher script lines
SHELL_BANG = "#! /bin/sh"
EXEC_VAR = "EXEC="
DIR_VAR = 'DIR=$(cd "$(dirname "$0")"; pwd)'
EXEC_CMD = 'exec "$DIR/$EXEC"'

# Characters still special inside a double-quoted shell string
SHELL_ESCAPES = str.maketrans({c: "\\" + c for c in '\\"$`'})

# Environment variable names
ENV_ICON = "APPBUNDLER_ICON"
ENV_OUTPUT = "APPBUNDLER_OUTPUT"

# Info.plist up to (not including) the closing </dict> and </plist> tags.
# create_info_plist() appends the optional icon entry and closes the document.
INFO_PLIST_TMPL = """\
<?xml version="1.0" encoding="UTF-8"?>
<!DOCTYPE plist PUBLIC "-//Apple//DTD PLIST 1.0//EN" "http://www.apple.com/DTDs/PropertyList-1.0.dtd">
<plist version="1.0">
\t<dict>
\t\t<key>CFBundleDevelopmentRegion</key>
\t\t<string>English</string>
\t\t<key>CFBundleExecutable</key>
\t\t<string>launcher</string>
\t\t<key>CFBundleInfoDictionaryVersion</key>
\t\t<string>6.0</string>
\t\t<key>CFBundlePackageType</key>
\t\t<string>APPL</string>
\t\t<key>CFBundleSignature</key>
\t\t<string>????</string>
\t\t<key>NSHighResolutionCapable</key>
\t\t<true/>
"""

INFO_PLIST_ICON_KEY = "\t\t<key>CFBundleIconFile</key>\n"
INFO_PLIST_ICON_VALUE = "\t\t<string>{icon_file}</string>\n"
INFO_PLIST_END = "\t</dict>\n</plist>"

# ----------------------------------------------------------------------------
# Optional dotenv support (zero production dependencies)


def _load_dotenv() -> None:
    """Attempt to load .env file if python-dotenv is available."""
    try:
        from dotenv import load_dotenv

        load_dotenv()
    except ImportError:
        pass


_load_dotenv()

# ----------------------------------------------------------------------------
# Outcome codes and error handling


class ExitCode(enum.IntEnum):
    """Outcome of a bundling run.

    Single digits are file operation failures, 10-19 are OS errors and
    30-39 are CLI errors.
    The value doubles as the process exit status of the CLI.
    """

    SUCCESS = 0
    BINARY_NOT_FOUND = 1
    ICON_NOT_FOUND = 2
    UNABLE_TO_CREATE = 3
    UNABLE_TO_WRITE = 4
    UNABLE_TO_COPY = 5
    CHANGE_PERMISSION = 6
    WRONG_FILE_FORMAT = 7
    NOT_UNIX_SYSTEM = 10
    CONFIGURATION_ERROR = 30

    def describe(self) -> str:
        """Return a short human readable description of the outcome."""
        return _EXIT_CODE_MESSAGES[self]


_EXIT_CODE_MESSAGES = {
    ExitCode.SUCCESS: "Bundle created",
    ExitCode.BINARY_NOT_FOUND: "Binary not found",
    ExitCode.ICON_NOT_FOUND: "Icon not found",
    ExitCode.UNABLE_TO_CREATE: "Unable to create bundle file or directory",
    ExitCode.UNABLE_TO_WRITE: "Unable to write bundle file",
    ExitCode.UNABLE_TO_COPY: "Unable to copy file into bundle",
    ExitCode.CHANGE_PERMISSION: "Unable to change launcher permissions",
    ExitCode.WRONG_FILE_FORMAT: f"Icon is not a .{ICON_EXT} file",
    ExitCode.NOT_UNIX_SYSTEM: "Not running on a unix-like OS",
    ExitCode.CONFIGURATION_ERROR: "Invalid configuration",
}


class BundlerError(Exception):
    """Base exception class for appbundler errors."""

    exit_code: ExitCode


class BinaryNotFoundError(BundlerError):
    """Exception raised when the input binary does not exist."""

    exit_code = ExitCode.BINARY_NOT_FOUND


class IconNotFoundError(BundlerError):
    """Exception raised when the input icon does not exist."""

    exit_code = ExitCode.ICON_NOT_FOUND


class WrongFileFormatError(BundlerError):
    """Exception raised when the icon does not have the .icns extension."""

    exit_code = ExitCode.WRONG_FILE_FORMAT


class UnableToCreateError(BundlerError):
    """Exception raised when a bundle directory or file cannot be created."""

    exit_code = ExitCode.UNABLE_TO_CREATE


class UnableToWriteError(BundlerError):
    """Exception raised when writing a generated file fails."""

    exit_code = ExitCode.UNABLE_TO_WRITE


class UnableToCopyError(BundlerError):
    """Exception raised when copying an input file into the bundle fails."""

    exit_code = ExitCode.UNABLE_TO_COPY


class ChangePermissionError(BundlerError):
    """Exception raised when the launcher mode cannot be set."""

    exit_code = ExitCode.CHANGE_PERMISSION


class NotUnixSystemError(BundlerError):
    """Exception raised when not running on a unix-like OS."""

    exit_code = ExitCode.NOT_UNIX_SYSTEM


class ConfigurationError(BundlerError):
    """Exception raised when configuration is invalid."""

    exit_code = ExitCode.CONFIGURATION_ERROR


# ----------------------------------------------------------------------------
# Configuration file support


def load_config(config_path: Path | None = None) -> dict[str, object]:
    """Load configuration from a TOML file.

    Searches for configuration in the following order:
    1. Explicit config_path if provided
    2. .appbundler.toml in current directory
    3. appbundler.toml in current directory

    Args:
        config_path: Optional explicit path to config file

    Returns:
        Configuration dictionary (empty if no config found)

    Raises:
        ConfigurationError: If the config file cannot be read or parsed

    Example .appbundler.toml:
        [bundle]
        icon = "assets/app.icns"
        output = "dist/MyApp"
    """
    if config_path and config_path.exists():
        paths_to_try = [config_path]
    else:
        cwd = Path.cwd()
        paths_to_try = [
            cwd / ".appbundler.toml",
            cwd / "appbundler.toml",
        ]

    for path in paths_to_try:
        if path.exists():
            try:
                with open(path, "rb") as f:
                    data: dict[str, object] = tomllib.load(f)
            except (OSError, tomllib.TOMLDecodeError) as e:
                raise ConfigurationError(
                    f"Invalid config file {path}: {e}"
                ) from e
            return data

    return {}


def get_config_value(
    config: dict[str, object],
    section: str,
    key: str,
    default: str | None = None,
) -> str | None:
    """Get a value from config with section.key lookup.

    Args:
        config: Configuration dictionary
        section: Section name (e.g., "bundle")
        key: Key name within section
        default: Default value if not found

    Returns:
        Configuration value or default
    """
    section_config = config.get(section, {})
    if not isinstance(section_config, dict):
        return default
    value = section_config.get(key, default)
    if value is None or isinstance(value, str):
        return value
    return default


def get_setting(
    config: dict[str, object], key: str, env_var: str
) -> str | None:
    """Resolve a [bundle] setting, the environment taking precedence."""
    value = os.environ.get(env_var)
    if value:
        return value
    return get_config_value(config, "bundle", key)


# ----------------------------------------------------------------------------
# Logging configuration


class CustomFormatter(logging.Formatter):
    """Custom logging formatting class with color support."""

    class color:
        """Text colors for terminal output."""

        white = "\x1b[97;20m"
        grey = "\x1b[38;20m"
        green = "\x1b[32;20m"
        yellow = "\x1b[33;20m"
        red = "\x1b[31;20m"
        bold_red = "\x1b[31;1m"
        reset = "\x1b[0m"

    cfmt = (
        f"{color.white}%(delta)s{color.reset} - "
        f"{{}}%(levelname)s{color.reset} - "
        f"{color.white}%(name)s.%(funcName)s{color.reset} - "
        f"{color.grey}%(message)s{color.reset}"
    )

    FORMATS = {
        logging.DEBUG: cfmt.format(color.grey),
        logging.INFO: cfmt.format(color.green),
        logging.WARNING: cfmt.format(color.yellow),
        logging.ERROR: cfmt.format(color.red),
        logging.CRITICAL: cfmt.format(color.bold_red),
    }

    def __init__(self, use_color: bool = True):
        super().__init__()
        self.use_color = use_color
        self.fmt = (
            "%(delta)s - %(levelname)s - %(name)s.%(funcName)s - %(message)s"
        )

    def format(self, record: logging.LogRecord) -> str:
        """Format the log record with color if enabled."""
        if not self.use_color:
            log_fmt = self.fmt
        else:
            log_fmt = self.FORMATS[record.levelno]
        duration = datetime.datetime.fromtimestamp(
            record.relativeCreated / 1000, datetime.timezone.utc
        )
        record.delta = duration.strftime("%H:%M:%S")
        formatter = logging.Formatter(log_fmt)
        return formatter.format(record)


def setup_logging(debug: bool = False, use_color: bool = True) -> None:
    """Configure logging for the application.

    Args:
        debug: Whether to enable debug logging
        use_color: Whether to use colored output
    """
    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(CustomFormatter(use_color))
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        handlers=[stream_handler],
        force=True,
    )


# ----------------------------------------------------------------------------
# Templates


def create_launch_script(binary_name: str) -> str:
    """Create the content of the launcher script.

    The script resolves its own directory at run time and execs the
    sibling binary, so the bundle can be moved or renamed freely. The
    binary name is backslash-escaped so the shell takes it literally.

    Args:
        binary_name: File name of the wrapped binary inside Contents/MacOS

    Returns:
        The POSIX shell script text
    """
    return (
        f"{SHELL_BANG}\n\n"
        f'{EXEC_VAR}"{binary_name.translate(SHELL_ESCAPES)}"\n'
        f"{DIR_VAR}\n"
        f"{EXEC_CMD}\n"
    )


def create_info_plist(icon_name: str | None = None) -> str:
    """Create the content of Info.plist.

    Args:
        icon_name: File name (not path) of the icon in Contents/Resources

    Returns:
        The property list text, with a CFBundleIconFile entry if
        icon_name is given
    """
    content = INFO_PLIST_TMPL
    if icon_name:
        content += INFO_PLIST_ICON_KEY
        content += INFO_PLIST_ICON_VALUE.format(icon_file=escape(icon_name))
    content += INFO_PLIST_END
    return content


# ----------------------------------------------------------------------------
# Bundle structure


def is_icns(path: Pathlike) -> bool:
    """Check whether path has the icon extension."""
    return Path(path).suffix == f".{ICON_EXT}"


def get_bundle_path(location: Pathlike) -> Path:
    """Return location with its extension replaced by .app.

    A location without a file name (``.`` or ``..``) is returned as is.
    """
    location = Path(location)
    if location.name in ("", ".."):
        return location
    return location.parent / (location.stem + BUNDLE_EXT)


def create_file_structure(location: Pathlike) -> Path:
    """Create the directory skeleton of a bundle.

    Creates <location>.app with Contents/MacOS and Contents/Resources.
    Missing parent directories of the bundle are created too. Nothing is
    cleaned up if a step fails.

    Args:
        location: Bundle path; its extension is replaced with .app

    Returns:
        Path to the bundle root

    Raises:
        FileExistsError: If anything already exists at the bundle path
        OSError: If a directory cannot be created
    """
    bundle = get_bundle_path(location)
    if bundle.exists():
        raise FileExistsError(f"{bundle} already exists")

    contents = bundle / DIR_CONTENTS
    bundle.mkdir(parents=True)
    contents.mkdir()
    (contents / DIR_MACOS).mkdir()
    (contents / DIR_RESOURCES).mkdir()
    return bundle


@dataclass(frozen=True)
class BundleData:
    """Validated-at-bundle-time input of a bundling run.

    Args:
        binary: Path to the executable to wrap
        icon: Optional path to a .icns icon
        name: Optional bundle path/name (default: the binary's file name)
    """

    binary: Path
    icon: Path | None = None
    name: Path | None = None

    @classmethod
    def from_strings(
        cls,
        binary: Pathlike,
        icon: Pathlike | None = None,
        name: Pathlike | None = None,
    ) -> "BundleData":
        """Build from raw values; empty icon or name count as absent."""
        icon = str(icon).strip() if icon is not None else ""
        name = str(name).strip() if name is not None else ""
        return cls(
            binary=Path(binary),
            icon=Path(icon) if icon else None,
            name=Path(name) if name else None,
        )


class AppBundle:
    """Creates a macOS application bundle around a single executable.

    Each stage of create() maps its failure to exactly one BundlerError
    subclass. The first failure aborts the run and leaves whatever was
    already created on disk.

    Args:
        data: The bundling input

    Example:
        app = AppBundle(BundleData.from_strings("/tmp/app", name="Foo"))
        app.create()  # ./Foo.app
    """

    def __init__(self, data: BundleData):
        self.data = data
        self.log = logging.getLogger(self.__class__.__name__)

        self.binary_name = data.binary.name
        self.icon_name = data.icon.name if data.icon else None

        # Bundle structure paths
        location = data.name if data.name else Path(self.binary_name)
        self.location = location
        self.bundle = get_bundle_path(location)
        self.contents = self.bundle / DIR_CONTENTS
        self.macos = self.contents / DIR_MACOS
        self.resources = self.contents / DIR_RESOURCES

        # Files
        self.info_plist = self.contents / FILE_INFO_PLIST
        self.executable = self.macos / self.binary_name
        self.launcher = self.macos / FILE_LAUNCHER
        self.icon = self.resources / self.icon_name if self.icon_name else None

    def check_platform(self) -> None:
        """Fail unless running on a unix-like OS."""
        if os.name != "posix":
            raise NotUnixSystemError("Not on a unix-like OS!")

    def validate(self) -> None:
        """Validate the input files before touching the filesystem."""
        binary = self.data.binary
        if not binary.is_file():
            raise BinaryNotFoundError(f'File "{binary}" does not exist!')

        icon = self.data.icon
        if icon is not None:
            if not icon.is_file():
                raise IconNotFoundError(f'File "{icon}" does not exist!')
            if not is_icns(icon):
                raise WrongFileFormatError(
                    f'Icon "{icon}" is not a .{ICON_EXT} file!'
                )

    def create_structure(self) -> None:
        """Create the bundle directory skeleton."""
        try:
            create_file_structure(self.location)
        except OSError as e:
            raise UnableToCreateError(
                f"Unable to create {self.bundle}: {e}"
            ) from e
        self.log.info("Contents location: %s", self.contents)

    def _write_file(self, path: Path, content: str) -> None:
        """Create path and write content, keeping both failures apart."""
        try:
            fopen = open(path, "w", encoding="utf-8")
        except OSError as e:
            raise UnableToCreateError(
                f"Unable to create {path.name}: {e}"
            ) from e
        try:
            with fopen:
                fopen.write(content)
        except OSError as e:
            raise UnableToWriteError(
                f"Unable to write to {path.name}: {e}"
            ) from e

    def create_info_plist(self) -> None:
        """Create the Info.plist file."""
        self.log.debug("Writing %s", self.info_plist)
        self._write_file(self.info_plist, create_info_plist(self.icon_name))

    def copy_executable(self) -> None:
        """Copy the binary into Contents/MacOS, keeping its mode bits."""
        self.log.debug("Copying %s to %s", self.data.binary, self.executable)
        try:
            shutil.copy(self.data.binary, self.executable)
        except OSError as e:
            raise UnableToCopyError(
                f"Unable to copy executable: {e}"
            ) from e

    def create_launcher(self) -> None:
        """Create the launcher script."""
        self.log.debug("Writing %s", self.launcher)
        self._write_file(self.launcher, create_launch_script(self.binary_name))

    def set_launcher_permissions(self) -> None:
        """Make the launcher read+execute only, independent of the umask."""
        try:
            self.launcher.chmod(LAUNCHER_MODE)
        except OSError as e:
            raise ChangePermissionError(
                f"Unable to change permissions of launch script: {e}"
            ) from e

    def copy_icon(self) -> None:
        """Copy the icon into Contents/Resources, if one was given."""
        if self.icon is None:
            return
        self.log.debug("Copying %s to %s", self.data.icon, self.icon)
        try:
            shutil.copy2(self.data.icon, self.icon)
        except OSError as e:
            raise UnableToCopyError(f"Unable to copy icon: {e}") from e
        self.log.info("Added icon: %s", self.icon_name)

    def create(self) -> Path:
        """Create the complete bundle.

        Returns:
            Path to the created bundle

        Raises:
            BundlerError: The first failing stage's error
        """
        self.check_platform()
        self.validate()

        self.log.info("Creating bundle at %s", self.bundle)
        self.create_structure()
        self.create_info_plist()
        self.copy_executable()
        self.create_launcher()
        self.set_launcher_permissions()
        self.copy_icon()

        self.log.info("Bundle created successfully: %s", self.bundle)
        return self.bundle


# ----------------------------------------------------------------------------
# Functional API


def bundle(data: BundleData) -> Path:
    """Create a macOS application bundle from an executable.

    This is a convenience function that creates an AppBundle instance
    and calls create() on it.

    Args:
        data: The bundling input

    Returns:
        Path to the created bundle

    Raises:
        BundlerError: On the first failing step

    Example:
        bundle_path = bundle(BundleData.from_strings("/tmp/app", name="Foo"))
    """
    return AppBundle(data).create()


def try_bundle(data: BundleData) -> ExitCode:
    """Create a bundle and report the outcome as an ExitCode."""
    try:
        bundle(data)
    except BundlerError as e:
        logging.getLogger("appbundler").error("%s", e)
        return e.exit_code
    return ExitCode.SUCCESS


# ----------------------------------------------------------------------------
# Command-line interface


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="appbundler",
        description="Bundle your binary to a macOS .app",
        epilog=(
            "Examples:\n"
            "  appbundler -b myapp\n"
            "  appbundler -b myapp -i myapp.icns -o MyApp\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "-b",
        "--binary",
        required=True,
        metavar="FILE",
        help="binary to bundle",
    )
    parser.add_argument(
        "-i",
        "--icon",
        metavar="ICON",
        help=f"icon to use (.{ICON_EXT})",
    )
    parser.add_argument(
        "-o",
        "--output",
        metavar="NAME",
        help="output app (default: binary name)",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="enable verbose/debug logging",
    )
    parser.add_argument(
        "--no-color",
        action="store_true",
        help="disable colored output",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    """Command line interface for appbundler."""
    args = _parse_args(argv)
    setup_logging(args.verbose, not args.no_color)
    log = logging.getLogger("appbundler")

    try:
        config = load_config()
        # an explicit flag wins, even when empty
        icon = args.icon
        if icon is None:
            icon = get_setting(config, "icon", ENV_ICON)
        output = args.output
        if output is None:
            output = get_setting(config, "output", ENV_OUTPUT)

        if icon and not is_icns(icon):
            log.error("Icon not a .%s file!", ICON_EXT)
            sys.exit(ExitCode.WRONG_FILE_FORMAT)

        data = BundleData.from_strings(args.binary, icon=icon, name=output)
        bundle_path = bundle(data)
        log.info("Created: %s", bundle_path)

    except BundlerError as e:
        log.error("%s", e)
        sys.exit(e.exit_code)
    except KeyboardInterrupt:
        log.info("Interrupted by user")
        sys.exit(130)

    sys.exit(ExitCode.SUCCESS)


if __name__ == "__main__":
    main()
