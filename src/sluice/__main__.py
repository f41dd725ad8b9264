"""Allow ``python -m sluice``."""

from sluice.main import run

run()
