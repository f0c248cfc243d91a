from unittest.mock import MagicMock


def mock_db():
    """ Make a mock pymongo database

    get_collection() always returns the same collection mock, so that calls can be asserted on it.

    :return: (db, collection)
    """
    db = MagicMock(name='db')
    collection = MagicMock(name='collection')
    db.get_collection.return_value = collection
    return db, collection
