from typing import Optional

import pyodbc

from pysqlaccess.command import DbType, Parameter, ParameterDirection

# not exported by `pyodbc`
SQL_SS_TIMESTAMPOFFSET = -155

# values of the column `COLUMN_TYPE` returned by the ODBC function `SQLProcedureColumns`
SQL_PARAM_INPUT = 1
SQL_PARAM_INPUT_OUTPUT = 2
SQL_RESULT_COL = 3
SQL_PARAM_OUTPUT = 4
SQL_RETURN_VALUE = 5

_PARAMETER_DIRECTIONS: dict[int, ParameterDirection] = {
    SQL_PARAM_INPUT: ParameterDirection.input,
    SQL_PARAM_INPUT_OUTPUT: ParameterDirection.input_output,
    SQL_PARAM_OUTPUT: ParameterDirection.output,
    SQL_RETURN_VALUE: ParameterDirection.return_value,
}

_ODBC_TO_DB_TYPE: dict[int, DbType] = {
    pyodbc.SQL_BIT: DbType.boolean,
    pyodbc.SQL_TINYINT: DbType.byte,
    pyodbc.SQL_SMALLINT: DbType.int16,
    pyodbc.SQL_INTEGER: DbType.int32,
    pyodbc.SQL_BIGINT: DbType.int64,
    pyodbc.SQL_REAL: DbType.single,
    pyodbc.SQL_FLOAT: DbType.double,
    pyodbc.SQL_DOUBLE: DbType.double,
    pyodbc.SQL_DECIMAL: DbType.decimal,
    pyodbc.SQL_NUMERIC: DbType.decimal,
    pyodbc.SQL_CHAR: DbType.ansi_string_fixed_length,
    pyodbc.SQL_VARCHAR: DbType.ansi_string,
    pyodbc.SQL_LONGVARCHAR: DbType.ansi_string,
    pyodbc.SQL_WCHAR: DbType.string_fixed_length,
    pyodbc.SQL_WVARCHAR: DbType.string,
    pyodbc.SQL_WLONGVARCHAR: DbType.string,
    pyodbc.SQL_BINARY: DbType.binary,
    pyodbc.SQL_VARBINARY: DbType.binary,
    pyodbc.SQL_LONGVARBINARY: DbType.binary,
    pyodbc.SQL_TYPE_DATE: DbType.date,
    pyodbc.SQL_TYPE_TIME: DbType.time,
    pyodbc.SQL_SS_TIME2: DbType.time,
    pyodbc.SQL_TYPE_TIMESTAMP: DbType.datetime,
    SQL_SS_TIMESTAMPOFFSET: DbType.datetime_offset,
    pyodbc.SQL_GUID: DbType.guid,
    pyodbc.SQL_SS_XML: DbType.xml,
}


def odbc_to_direction(column_type: int) -> Optional[ParameterDirection]:
    "Maps a procedure column type to a parameter direction, or `None` for result-set columns."

    return _PARAMETER_DIRECTIONS.get(column_type)


def odbc_to_db_type(data_type: int) -> DbType:
    "Returns the driver-neutral data type associated with an ODBC data type code."

    return _ODBC_TO_DB_TYPE.get(data_type, DbType.object)


def db_to_odbc_type(parameter: Parameter) -> Optional[tuple[int, int, int]]:
    """
    Returns the ODBC data type associated with the type of a parameter.

    Passing the right data types to `setinputsizes` eliminates data-based guessing, and can speed up `executemany`
    by a significant factor.

    :returns: ODBC type code, column size and decimal digits, or `None` if the type is not specific enough.
    """

    db_type = parameter.db_type

    if db_type is DbType.boolean:
        return pyodbc.SQL_BIT, 0, 0

    elif db_type is DbType.byte:
        return pyodbc.SQL_TINYINT, 0, 0
    elif db_type is DbType.int16:
        return pyodbc.SQL_SMALLINT, 0, 0
    elif db_type is DbType.int32:
        return pyodbc.SQL_INTEGER, 0, 0
    elif db_type is DbType.int64:
        return pyodbc.SQL_BIGINT, 0, 0

    elif db_type is DbType.single:
        return pyodbc.SQL_REAL, 0, 0
    elif db_type is DbType.double:
        return pyodbc.SQL_DOUBLE, 0, 0
    elif db_type is DbType.decimal or db_type is DbType.currency:
        return pyodbc.SQL_DECIMAL, parameter.precision or 15, parameter.scale or 0

    elif db_type is DbType.datetime:
        return pyodbc.SQL_TYPE_TIMESTAMP, 0, 0
    elif db_type is DbType.date:
        return pyodbc.SQL_TYPE_DATE, 0, 0
    elif db_type is DbType.time:
        return pyodbc.SQL_TYPE_TIME, parameter.precision or 6, 0

    elif db_type is DbType.ansi_string_fixed_length:
        return pyodbc.SQL_CHAR, parameter.size, 0
    elif db_type is DbType.ansi_string:
        return pyodbc.SQL_VARCHAR, parameter.size, 0
    elif db_type is DbType.string_fixed_length:
        return pyodbc.SQL_WCHAR, parameter.size, 0
    elif db_type is DbType.string:
        return pyodbc.SQL_WVARCHAR, parameter.size, 0
    elif db_type is DbType.binary:
        return pyodbc.SQL_VARBINARY, parameter.size, 0
    elif db_type is DbType.guid:
        return pyodbc.SQL_GUID, 0, 0

    return None
