import sys
from routes.deps import create_access_token
from logging_config import setup_logging

setup_logging()


def get_token(user_id: str):
    token = create_access_token({"sub": user_id})
    print(f"TOKEN={token}")
    print(f"USER_ID={user_id}")


if __name__ == "__main__":
    if len(sys.argv) != 2:
        print("Usage: python get_test_token.py <user_id>")
        sys.exit(1)
    get_token(sys.argv[1])
