"""Allow running the bridge with ``python -m hybrid_bridge``."""

from hybrid_bridge.cli import main

if __name__ == "__main__":
    main()
