"""Print an auth token for a user id, e.g. `python scripts/issue_token.py teacher-1`."""
import sys
import os

# Add project root to path
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from api.auth import generate_token

if __name__ == "__main__":
    if len(sys.argv) != 2:
        print("Usage: python scripts/issue_token.py <user_id>")
        sys.exit(1)
    print(generate_token(sys.argv[1]))
