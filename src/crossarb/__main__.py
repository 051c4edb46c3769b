"""Allow running with ``python -m crossarb``."""
from crossarb.main import run

if __name__ == "__main__":
    run()
