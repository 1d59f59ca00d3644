import os
from unittest.mock import MagicMock, mock_open, patch

import psycopg2
import pytest

from storefront.infrastructure.persistence.db_initializer import SCHEMA_FILE, _read_sql_file, initialize_database


# --- Mocks Comunes (Fixtures) ---

@pytest.fixture
def mock_db_connection():
    """Mockea la conexión y el cursor de psycopg2."""
    mock_cursor = MagicMock()
    mock_conn = MagicMock()
    mock_conn.cursor.return_value = mock_cursor
    return mock_conn


@pytest.fixture(autouse=True)
def mock_db_connector(mock_db_connection):
    """Mockea get_connection y release_connection a nivel de módulo."""
    with patch('storefront.infrastructure.persistence.db_initializer.get_connection',
               return_value=mock_db_connection) as get_conn_mock, \
            patch('storefront.infrastructure.persistence.db_initializer.release_connection') as release_conn_mock:
        yield get_conn_mock, release_conn_mock


@pytest.fixture
def mock_config():
    """Controla RUN_DB_INIT_ON_STARTUP."""
    with patch('storefront.infrastructure.persistence.db_initializer.Config') as MockConfig:
        MockConfig.RUN_DB_INIT_ON_STARTUP = True
        yield MockConfig


# --- _read_sql_file ---

def test_schema_file_ships_with_repository():
    assert os.path.isfile(SCHEMA_FILE)
    assert "storefront.orders" in _read_sql_file(SCHEMA_FILE)


def test_read_sql_file_success():
    with patch('builtins.open', mock_open(read_data="CREATE TABLE orders;")):
        assert _read_sql_file("dummy_path.sql") == "CREATE TABLE orders;"


def test_read_sql_file_not_found():
    with patch('builtins.open', side_effect=FileNotFoundError):
        assert _read_sql_file("non_existent.sql") == ""


# --- initialize_database ---

def test_initialize_database_skipped_by_config(mock_config, mock_db_connector):
    mock_config.RUN_DB_INIT_ON_STARTUP = False

    assert initialize_database() is False
    mock_db_connector[0].assert_not_called()


@patch('storefront.infrastructure.persistence.db_initializer._read_sql_file', return_value="CREATE SCHEMA x;")
def test_initialize_database_success(mock_read, mock_config, mock_db_connector, mock_db_connection):
    assert initialize_database() is True

    mock_db_connection.cursor.return_value.execute.assert_called_once_with("CREATE SCHEMA x;")
    mock_db_connection.commit.assert_called_once()
    mock_db_connector[1].assert_called_once_with(mock_db_connection)


@patch('storefront.infrastructure.persistence.db_initializer._read_sql_file', return_value="")
def test_initialize_database_empty_script(mock_read, mock_config, mock_db_connector):
    assert initialize_database() is False
    mock_db_connector[0].assert_not_called()


@patch('storefront.infrastructure.persistence.db_initializer._read_sql_file', return_value="CREATE SCHEMA x;")
def test_initialize_database_db_error(mock_read, mock_config, mock_db_connection):
    mock_db_connection.cursor.return_value.execute.side_effect = psycopg2.Error("syntax error")

    assert initialize_database() is False
    mock_db_connection.rollback.assert_called_once()
    mock_db_connection.commit.assert_not_called()
