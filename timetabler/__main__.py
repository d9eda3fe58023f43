"""
Package entry point.

Allows running the application via:

    python -m timetabler

This simply forwards execution to timetabler.cli.main().
"""

from timetabler.cli import main

if __name__ == "__main__":
    main()
