import uvicorn

from .app import create_app  # noqa: F401


def main() -> None:
    uvicorn.run("dealpass_api.app:create_app", factory=True, reload=True)


if __name__ == "__main__":
    main()
