"""Entry point for `python -m assert_divide`."""

from dotenv import load_dotenv

load_dotenv()

from assert_divide.cli import main

if __name__ == "__main__":
    main()
