"""
Background service support for Hotfolder Watcher.

Runs the monitor headless against the persisted hotfolder:

- Windows: a pywin32 service (``install``, ``start``, ``stop``, ``remove``).
- macOS: a launchd LaunchAgent (``install``, ``start``, ``stop``, ``remove``, ``run``).
- Linux: ``start`` or ``run`` monitors in the foreground until Ctrl-C.

Invoke as ``python -m hotfolder --service <command>``.
"""

import asyncio
import logging
import plistlib
import subprocess
import sys
import threading
from pathlib import Path
from typing import Callable

from hotfolder.platform_utils import IS_MACOS, IS_WINDOWS

logger = logging.getLogger(__name__)

_HAS_WIN32 = False
if IS_WINDOWS:
    try:
        import servicemanager  # type: ignore[import-untyped]
        import win32event  # type: ignore[import-untyped]
        import win32service  # type: ignore[import-untyped]
        import win32serviceutil  # type: ignore[import-untyped]
        _HAS_WIN32 = True
    except ImportError:
        pass

LAUNCHD_LABEL = "com.hotfolder.watcher"


def _build_app():
    """Create a configured :class:`App` with file logging, or raise."""
    from hotfolder.app import App, setup_logging
    from hotfolder.config import Config

    cfg = Config()
    setup_logging(cfg)
    app = App(cfg)
    if not cfg.hotfolder_token:
        logger.error("Service cannot start: hotfolder not configured.")
        raise RuntimeError("Hotfolder Watcher is not configured.")
    return app


# ======================================================================
# Windows service
# ======================================================================

if _HAS_WIN32:

    class HotfolderService(win32serviceutil.ServiceFramework):
        """Windows service implementation for Hotfolder Watcher."""

        _svc_name_ = "HotfolderWatcher"
        _svc_display_name_ = "Hotfolder Watcher"
        _svc_description_ = (
            "Watches a hotfolder for new files, processes them one at a time "
            "and archives them into its _processed subfolder."
        )

        def __init__(self, args):
            super().__init__(args)
            self._stop_event = win32event.CreateEvent(None, 0, 0, None)
            self._app = None
            self._thread = None

        def SvcStop(self):
            self.ReportServiceStatus(win32service.SERVICE_STOP_PENDING)
            if self._app:
                self._app.wait_until_ready(timeout=5)
                self._app.request_stop()
            win32event.SetEvent(self._stop_event)
            logger.info("Service stop requested.")

        def SvcDoRun(self):
            servicemanager.LogMsg(
                servicemanager.EVENTLOG_INFORMATION_TYPE,
                servicemanager.PYS_SERVICE_STARTED,
                (self._svc_name_, ""),
            )
            try:
                self._app = _build_app()
                folder = self._app.ensure_hotfolder()
                if folder is None:
                    raise RuntimeError("Persisted hotfolder is not usable.")
                self._thread = threading.Thread(
                    target=asyncio.run,
                    args=(self._app.run_async(folder),),
                    name="HotfolderLoop",
                    daemon=True,
                )
                self._thread.start()
                win32event.WaitForSingleObject(self._stop_event, win32event.INFINITE)
            except Exception as exc:
                logger.exception("Service error: %s", exc)
                servicemanager.LogErrorMsg(f"Hotfolder Watcher error: {exc}")
            finally:
                if self._app:
                    self._app.request_stop()
                if self._thread:
                    self._thread.join(timeout=30)
            logger.info("Service stopped.")




# ======================================================================
# macOS launchd agent
# ======================================================================

def _launch_agent_path() -> Path:
    return Path.home() / "Library" / "LaunchAgents" / f"{LAUNCHD_LABEL}.plist"


def launchd_plist(python: str, log_dir: Path) -> dict:
    """Return the LaunchAgent definition that runs the monitor with *python*."""
    return {
        "Label": LAUNCHD_LABEL,
        "ProgramArguments": [python, "-m", "hotfolder", "--service", "run"],
        "RunAtLoad": False,
        "KeepAlive": True,
        "StandardOutPath": str(log_dir / "stdout.log"),
        "StandardErrorPath": str(log_dir / "stderr.log"),
    }


def _macos_install() -> None:
    log_dir = Path.home() / "Library" / "Logs" / "HotfolderWatcher"
    log_dir.mkdir(parents=True, exist_ok=True)
    path = _launch_agent_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "wb") as fh:
        plistlib.dump(launchd_plist(sys.executable, log_dir), fh)
    print(f"Installed launchd agent: {path}")


def _launchctl(verb: str, check: bool) -> None:
    path = _launch_agent_path()
    if not path.exists():
        print("Launch agent not installed. Run 'install' first.")
        return
    subprocess.run(["launchctl", verb, str(path)], check=check)
    print(f"launchctl {verb}: {LAUNCHD_LABEL}")


def _macos_remove() -> None:
    _launchctl("unload", check=False)
    _launch_agent_path().unlink(missing_ok=True)
    print("Removed launchd agent.")


# ======================================================================
# Foreground runner
# ======================================================================

def _run_foreground() -> None:
    """Run the monitor in the foreground until SIGINT/SIGTERM."""
    try:
        app = _build_app()
    except RuntimeError as exc:
        print(f"ERROR: {exc}")
        sys.exit(1)
    print("Hotfolder Watcher running (press Ctrl-C to stop)…")
    status = app.run()
    print("Hotfolder Watcher stopped.")
    sys.exit(status)


# ======================================================================
# CLI entry
# ======================================================================

def _commands() -> dict[str, tuple[Callable[[], None], str]]:
    """Return the service commands available on this platform."""
    if IS_MACOS:
        return {
            "install": (_macos_install, "Create the launchd agent"),
            "start": (lambda: _launchctl("load", check=True), "Load the launchd agent"),
            "stop": (lambda: _launchctl("unload", check=False), "Unload the launchd agent"),
            "remove": (_macos_remove, "Unload and delete the launchd agent"),
            "run": (_run_foreground, "Run in foreground"),
        }
    return {
        "start": (_run_foreground, "Run in foreground (Ctrl-C to stop)"),
        "run": (_run_foreground, "Run in foreground (Ctrl-C to stop)"),
    }


def main(argv: list[str] | None = None) -> None:
    """Dispatch a service command for the current platform."""
    args = sys.argv[1:] if argv is None else argv
    cmd = args[0] if args else ""

    if IS_WINDOWS:
        if not _HAS_WIN32:
            print("ERROR: pywin32 is required for service mode on Windows.")
            print("       pip install pywin32")
            sys.exit(1)
        if cmd == "":
            try:
                servicemanager.Initialize()
                servicemanager.PrepareToHostSingle(HotfolderService)
                servicemanager.StartServiceCtrlDispatcher()
            except Exception:
                _show_help()
        else:
            win32serviceutil.HandleCommandLine(HotfolderService, argv=[sys.argv[0], *args])
        return

    command = _commands().get(cmd)
    if command is None:
        _show_help()
        return
    command[0]()


def _show_help() -> None:
    print("Usage: python -m hotfolder --service <command>")
    print()
    if IS_WINDOWS:
        print("  install | start | stop | remove   Manage the Windows service")
        return
    for name, (_, description) in _commands().items():
        print(f"  {name:<8} {description}")
