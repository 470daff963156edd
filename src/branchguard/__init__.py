"""GitHub branch protection tool.

Features:
- Lock (protect) every branch whose name matches a regular expression
- Unlock (unprotect) matching protected branches
- Dry run mode to preview affected branches
- Partial failure reporting listing branches already changed
- Local and global JSON configuration
"""

__version__ = "0.1.0"
