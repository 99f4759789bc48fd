"""Main entry point when executing pollnotify as a package.

This allows running the package using python -m pollnotify.
"""

from pollnotify.main import cli_entry_point

if __name__ == "__main__":
    cli_entry_point()
