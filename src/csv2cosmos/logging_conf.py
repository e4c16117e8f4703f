from logging import INFO, StreamHandler, getLogger

from pythonjsonlogger import jsonlogger


def configure_logging(level: int = INFO) -> None:
    logger = getLogger()
    logger.handlers.clear()
    handler = StreamHandler()
    fmt = jsonlogger.JsonFormatter("%(asctime)s %(levelname)s %(name)s %(message)s")
    handler.setFormatter(fmt)
    logger.addHandler(handler)
    logger.setLevel(level)
    # the Azure SDKs log every HTTP request at INFO
    getLogger("azure").setLevel("WARNING")
