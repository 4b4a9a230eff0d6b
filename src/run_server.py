import logging
import os
import socket

import uvicorn


def find_free_port(starting_port):
    port = starting_port
    while True:
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
            result = s.connect_ex(("localhost", port))
            if result != 0:  # If port is free
                return port
            port += 1


def main():
    logging.basicConfig(
        level=os.getenv("KULIB_LOG_LEVEL", "INFO"),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    host = os.getenv("KULIB_HOST", "127.0.0.1")
    port = find_free_port(int(os.getenv("KULIB_PORT", "8080")))
    logging.getLogger(__name__).info("Server running on %s:%d", host, port)
    uvicorn.run("kulibrary.core:app", host=host, port=port, log_config=None)


if __name__ == "__main__":
    main()
