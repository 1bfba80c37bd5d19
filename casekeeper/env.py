from pathlib import Path

from dotenv import load_dotenv


def load_env() -> bool:
    """Load .env from the working directory if present. Existing variables win."""
    env_path = Path.cwd() / ".env"
    if not env_path.exists():
        return False
    return load_dotenv(dotenv_path=env_path, override=False)
