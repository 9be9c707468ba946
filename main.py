from org_attach.cli import app


def main() -> None:
    app()


if __name__ == "__main__":
    main()
