"""Allow running the API server with `python -m apiserver`."""
from apiserver.main import main

if __name__ == "__main__":
    main()
