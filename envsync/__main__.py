"""Allow ``python -m envsync``."""

from .main import main

main()
