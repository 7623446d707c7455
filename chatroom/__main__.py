import uvicorn

from chatroom.config import settings


def main() -> None:
    uvicorn.run("chatroom.main:app", host=settings.HOST, port=settings.PORT, log_config=None)


if __name__ == "__main__":
    main()
