from typing import Any

import oracledb

from pysqlaccess.command import DbType, Parameter

_DB_TO_ORACLE_TYPE: dict[DbType, Any] = {
    DbType.boolean: oracledb.DB_TYPE_BOOLEAN,
    DbType.byte: oracledb.DB_TYPE_NUMBER,
    DbType.int16: oracledb.DB_TYPE_NUMBER,
    DbType.int32: oracledb.DB_TYPE_NUMBER,
    DbType.int64: oracledb.DB_TYPE_NUMBER,
    DbType.decimal: oracledb.DB_TYPE_NUMBER,
    DbType.currency: oracledb.DB_TYPE_NUMBER,
    DbType.single: oracledb.DB_TYPE_BINARY_FLOAT,
    DbType.double: oracledb.DB_TYPE_BINARY_DOUBLE,
    DbType.ansi_string: oracledb.DB_TYPE_VARCHAR,
    DbType.string: oracledb.DB_TYPE_VARCHAR,
    DbType.ansi_string_fixed_length: oracledb.DB_TYPE_CHAR,
    DbType.string_fixed_length: oracledb.DB_TYPE_CHAR,
    DbType.binary: oracledb.DB_TYPE_RAW,
    DbType.guid: oracledb.DB_TYPE_RAW,
    DbType.date: oracledb.DB_TYPE_DATE,
    DbType.datetime: oracledb.DB_TYPE_TIMESTAMP,
    DbType.datetime_offset: oracledb.DB_TYPE_TIMESTAMP_TZ,
    DbType.time: oracledb.DB_TYPE_INTERVAL_DS,
    DbType.xml: oracledb.DB_TYPE_CLOB,
}


def db_to_oracle_type(db_type: DbType) -> Any:
    "Returns the Oracle data type associated with a driver-neutral data type."

    return _DB_TO_ORACLE_TYPE.get(db_type, oracledb.DB_TYPE_VARCHAR)


def create_variable(cur: oracledb.Cursor, parameter: Parameter) -> oracledb.Var:
    """
    Creates a bind variable that receives the value of an output parameter.

    Variable-length types default to the maximum size of the type if the parameter specifies no size.
    """

    oracle_type = db_to_oracle_type(parameter.db_type)
    if oracle_type is oracledb.DB_TYPE_VARCHAR or oracle_type is oracledb.DB_TYPE_CHAR:
        return cur.var(oracle_type, parameter.size or 4000)
    elif oracle_type is oracledb.DB_TYPE_RAW:
        return cur.var(oracle_type, parameter.size or 2000)
    else:
        return cur.var(oracle_type)
