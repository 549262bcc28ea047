"""Allow running the CLI as ``python -m imagerecipe``."""

from imagerecipe.cli import app

if __name__ == "__main__":
    app(prog_name="imagerecipe")
