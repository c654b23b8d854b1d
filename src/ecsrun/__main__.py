"""Invoked as: python -m ecsrun [command ...]"""

from __future__ import annotations

from ecsrun.run import main

if __name__ == "__main__":
    main()
