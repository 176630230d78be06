"""Allow ``python -m agent_trail``."""

from .cli import main

if __name__ == "__main__":
    main()
