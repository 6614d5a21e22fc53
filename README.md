# cqlxkit

Helpers for working with Cassandra-compatible databases from Python:

- **Result scanning**: turn query rows into dataclass instances or plain
  values with `Iterx`, matching column names to fields through a `Mapper`.
- **Schema migrations**: apply a flat directory of `*.cql` files in order,
  record what was applied, detect edited files, and run Python callbacks
  before, after or in the middle of a migration.
- **Naming**: `camelize` turns `snake_case` names into `CamelCase`, and
  `camel_to_snake` goes the other way.

The package has no runtime dependencies.

## Installation

```
pip install cqlxkit
```

To run the test suite:

```
pip install "cqlxkit[test]"
pytest
```

## What this package does not do

It holds no database driver and opens no connections. You supply rows
(for example in a `ResultSet`) and a session object that wraps the driver
you use. It has no command-line tool and does not generate model code from
a live keyspace.

## Scanning results

`cqlxkit.iterx.ResultSet(columns, rows, error)` holds the column names of a
result, its rows and, optionally, an exception the query reported.
`cqlxkit.iterx.Iterx(source, mapper)` wraps such a source and fills objects
from it. Any object with `columns`, `num_rows`, `scan()` (next row as a
sequence, or `None`) and `close()` (raising the query error) can be a source.

```python
from dataclasses import dataclass

from cqlxkit.iterx import Iterx, NotFoundError, ResultSet
from cqlxkit.mapper import Mapper, camel_to_snake


@dataclass
class Person:
    first_name: str = ""
    last_name: str = ""


mapper = Mapper("db", camel_to_snake)
rows = ResultSet(["first_name", "last_name"], [("Jane", "Doe")], None)

person = Iterx(rows, mapper).get(Person)
```

- `get(cls)` reads the first row into a new `cls` value and closes the
  iterator; it raises `NotFoundError` when the result is empty.
- `select(cls)` reads every row into a list; an empty result gives an empty
  list, not an error.
- `struct_scan(target)` fills an existing dataclass instance from the next row
  and returns `False` at the end or on error, for results too large to hold in
  memory at once.
- `scan()` returns the next row's raw values, or `None`.
- `close()` closes the source and raises any error met during the query or
  the iteration.

A result column with no matching field is an error that names the column.
Call `unsafe()` on the iterator to ignore such columns, or set
`cqlxkit.iterx.DEFAULT_UNSAFE = True` for iterators created afterwards.

A class is scanned as a single-column value rather than field by field when
it is not a dataclass, has a `from_cql` class method (which then converts the
column value), is marked as a user-defined type with `__cql_udt__ = True`, or
has no mapped fields. Such a scan with more than one column in the result is
an error. Call `struct_only()` to scan a dataclass field by field anyway.
User-defined-type classes receive mapping values through their own fields.

A result whose first column is `[applied]` (a conditional write) is
recognised: that column need not map to a field, and its value is stored in
the iterator's `applied` attribute.

### Mapping fields to columns

A field's column name comes from its dataclass metadata under the mapper's
tag (`field(metadata={"db": "name"})`), otherwise from `name_func` applied to
the attribute name. A tag of `"-"` hides the field, and fields starting with
an underscore are skipped. Fields of a nested dataclass are reachable as
`outer.inner`; with `metadata={"embed": True}` they appear at the outer
level instead.

- `Mapper.field_map(cls)`: column name to attribute path.
- `Mapper.traversals_by_name(cls, names)`: the path of each name, `()` if
  unmapped.
- `Mapper.has_fields(cls)`: whether `cls` is a dataclass with mapped fields.

`camel_to_snake("UserID")` gives `"user_id"`; `cqlxkit.mapper.DEFAULT_MAPPER`
uses the `db` tag and this function.

## Migrations

Migrations live in a flat directory of `*.cql` files. A migration's name is
its file name, and files are applied in lexicographical order. Statements are
split at every semicolon; the last one may omit it.

The session passed in must provide:

- `execute(stmt, values=())` to run a statement,
- `query(stmt)` returning a result source as described above,
- `await_schema_agreement()`.

```python
from cqlxkit.migrate.migrate import from_fs, list_migrations

from_fs(session, "schema/")

for info in list_migrations(session):
    print(info.name, info.checksum, info.done)
```

`from_fs` takes a path or any object with `iterdir()` and `/`;
`migrate(session, directory)` takes a path on disk. Progress is recorded in
the `gocqlx_migrate` table (created when missing) as one `Info` per file:
name, MD5 checksum, number of statements applied, start and end time. A
partly applied file resumes from the statement after the last one recorded.
`from_fs` raises `MigrationError` when:

- the directory holds no `*.cql` files,
- the database records more migrations than there are files,
- a recorded migration name does not match the file in its position,
- an applied file has changed since (its checksum differs),
- a file holds no statements, a statement fails, or a callback raises.

`DEFAULT_AWAIT_SCHEMA_AGREEMENT` in `cqlxkit.migrate.migrate` selects extra
waits for schema agreement: `AwaitSchemaAgreement.DISABLED` (default),
`BEFORE_EACH_FILE` or `BEFORE_EACH_STATEMENT`. Agreement is always awaited
once at the end.

### Callbacks

Set `cqlxkit.migrate.migrate.CALLBACK` to a function taking
`(session, event, name)`. `CallbackRegister` dispatches to handlers per event
and name:

```python
import cqlxkit.migrate.migrate as migrations
from cqlxkit.migrate.callback import CallbackEvent, CallbackRegister

register = CallbackRegister()
register.add(CallbackEvent.BEFORE_MIGRATION, "001_init.cql", on_before)
register.add(CallbackEvent.AFTER_MIGRATION, "001_init.cql", on_after)
register.add(CallbackEvent.CALL_COMMENT, "backfill_users", backfill_users)
migrations.CALLBACK = register.callback
```

`BEFORE_MIGRATION` and `AFTER_MIGRATION` fire around each file that has
statements to apply. A statement of the form

```
-- CALL backfill_users;
```

fires `CALL_COMMENT` with that name instead of being executed. A missing
handler for a call comment is an error (and with no callback set at all, such
a statement fails the migration); missing before and after handlers are
skipped. `is_callback(stmt)` returns the name in such a comment, or `""`.

### Checksums

`checksum(data)` in `cqlxkit.migrate.checksum` gives the hex MD5 digest of
bytes; `file_checksum(directory, path)` that of a file, or `""` when the file
cannot be opened.

## Naming

```python
from cqlxkit.camelize import camelize

camelize("song_id")       # "SongId"
camelize("_hello_world")  # "HelloWorld"
```

Only ASCII letters, digits and underscores are accepted; any other character
raises `ValueError`.