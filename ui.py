"""Entry point for the installer helper window."""

from yt_updater.installer_app import InstallerWindow, main

__all__ = ["InstallerWindow", "main"]


if __name__ == "__main__":
    raise SystemExit(main())
