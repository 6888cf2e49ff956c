"""Module entry point for the bypass gateway CLI."""

from .main import main

raise SystemExit(main())
