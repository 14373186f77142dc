"""
Run the tradesim test suite.

Usage:
    python run_tests.py            # all tests
    python run_tests.py risk       # only tests whose names match "risk"
"""

import subprocess
import sys
import os


def run_tests(keyword=None):
    """Runs all tests in the tests directory, optionally filtered by keyword."""

    # Get the project root directory
    project_root = os.path.dirname(os.path.abspath(__file__))

    # Add project root to PYTHONPATH for the subprocess
    env = os.environ.copy()
    env['PYTHONPATH'] = project_root + (os.pathsep + env.get('PYTHONPATH', ''))

    command = [sys.executable, "-m", "pytest", "tests/", "-v"]
    if keyword:
        command.extend(["-k", keyword])

    try:
        subprocess.run(command, check=True, cwd=project_root, env=env)
        print("✅ All tests passed successfully!")
    except subprocess.CalledProcessError as e:
        print(f"❌ Tests failed with exit code {e.returncode}")
        sys.exit(1)
    except FileNotFoundError:
        print("❌ Python interpreter not found for running pytest")
        sys.exit(1)


if __name__ == "__main__":
    run_tests(sys.argv[1] if len(sys.argv) > 1 else None)
