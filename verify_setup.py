"""
Setup verification script for the research document backend.
Checks dependencies, configuration, the database and the model gateway.
"""
import asyncio
import os
import sys
from typing import Callable, List, Tuple

# Color codes for terminal output
GREEN = "\033[92m"
RED = "\033[91m"
YELLOW = "\033[93m"
BLUE = "\033[94m"
RESET = "\033[0m"


def print_status(message: str, status: bool):
    """Print colored status message."""
    symbol = f"{GREEN}✓{RESET}" if status else f"{RED}✗{RESET}"
    print(f"{symbol} {message}")


async def check_python_version() -> bool:
    """Check Python version is 3.11+."""
    version = sys.version_info
    if version.major == 3 and version.minor >= 11:
        print_status(f"Python version: {version.major}.{version.minor}.{version.micro}", True)
        return True
    print_status(f"Python version {version.major}.{version.minor} (requires 3.11+)", False)
    return False


async def check_dependencies() -> bool:
    """Check if required packages are importable."""
    required_packages = [
        "fastapi",
        "uvicorn",
        "sqlalchemy",
        "asyncpg",
        "pydantic_settings",
        "httpx",
        "multipart",
        "fitz",
        "docx",
        "bs4",
    ]

    all_installed = True
    for package in required_packages:
        try:
            __import__(package)
            print_status(f"Package '{package}' installed", True)
        except ImportError:
            print_status(f"Package '{package}' missing", False)
            all_installed = False

    return all_installed


async def check_env_file() -> bool:
    """Check if .env file exists."""
    if os.path.exists(".env"):
        print_status(".env file exists", True)
        return True
    print_status(".env file missing (settings fall back to defaults)", False)
    return False


async def check_gateway_config() -> bool:
    """Check that the model gateway key is configured (the gateway is not called)."""
    from researchdoc.config import settings

    configured = bool(settings.LLM_API_KEY)
    print_status(f"Model gateway: {settings.LLM_BASE_URL} ({settings.LLM_MODEL})", True)
    print_status(f"LLM_API_KEY: {'set' if configured else 'missing'}", configured)
    if not configured:
        print(f"  {YELLOW}Set LLM_API_KEY in .env to enable generation and the assistant{RESET}")
    return configured


async def check_database() -> bool:
    """Check the configured database accepts connections."""
    try:
        from sqlalchemy import text

        from researchdoc.database import engine

        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        await engine.dispose()

        print_status("Database connection successful", True)
        return True

    except Exception as e:
        print_status(f"Database connection failed: {str(e)}", False)
        print(f"  {YELLOW}Check DATABASE_URL and that PostgreSQL is running{RESET}")
        return False


async def main():
    """Run all verification checks."""
    print(f"\n{BLUE}{'='*60}{RESET}")
    print(f"{BLUE}Research Document Backend - Setup Verification{RESET}")
    print(f"{BLUE}{'='*60}{RESET}\n")

    checks: List[Tuple[str, Callable]] = [
        ("Python Version", check_python_version),
        ("Dependencies", check_dependencies),
        ("Environment File", check_env_file),
        ("Model Gateway", check_gateway_config),
        ("Database", check_database),
    ]

    results = []

    for check_name, check_func in checks:
        print(f"\n{BLUE}Checking {check_name}...{RESET}")
        try:
            result = await check_func()
            results.append(result)
        except Exception as e:
            print_status(f"Error during check: {str(e)}", False)
            results.append(False)

    # Summary
    print(f"\n{BLUE}{'='*60}{RESET}")
    passed = sum(results)
    total = len(results)

    if passed == total:
        print(f"{GREEN}✓ All checks passed! ({passed}/{total}){RESET}")
        print(f"\n{GREEN}You're ready to run the backend:{RESET}")
        print("  uvicorn researchdoc.main:app --reload")
    else:
        print(f"{RED}✗ Some checks failed ({passed}/{total} passed){RESET}")
        print(f"\n{YELLOW}Please fix the issues above before running the backend.{RESET}")
        sys.exit(1)

    print(f"{BLUE}{'='*60}{RESET}\n")


if __name__ == "__main__":
    asyncio.run(main())
