import logging

from auto_signout.db import Base, engine
import auto_signout.models  # noqa: F401


logging.basicConfig(level=logging.INFO, format='%(asctime)s %(levelname)s %(name)s %(message)s')
logger = logging.getLogger('bootstrap')


def main():
    Base.metadata.create_all(bind=engine)
    logger.info('Document tables ready: %s', sorted(Base.metadata.tables))


if __name__ == '__main__':
    main()
