"""
Shared fixtures: a small CRM-like schema and its graph.

Account  -> User        (OwnerId foreign key)
Contact  -> Account     (AccountId foreign key)
Contact  -> Employee    (ReportsToId, Employee is not part of the schema)
Opportunity -> Account  (AccountId foreign key)
Case     -> Account     (child relationship only, no foreign key)
Audit                   (isolated)
"""

import pytest

from schema_query_server.graph.models import (
    ChildRelationshipSchema,
    ColumnSchema,
    ForeignKeySchema,
    TableSchema,
)
from schema_query_server.graph.schema_graph import SchemaGraph


def make_table(name, columns, foreign_keys=(), child_relationships=(), namespace="public"):
    cols = []
    for spec in columns:
        if isinstance(spec, ColumnSchema):
            cols.append(spec)
            continue
        col_name, data_type = spec
        cols.append(ColumnSchema(
            name=col_name,
            data_type=data_type,
            is_primary_key=col_name == "Id",
            is_nullable=col_name != "Id",
        ))

    return TableSchema(
        name=name,
        namespace=namespace,
        columns=tuple(cols),
        foreign_keys=tuple(
            ForeignKeySchema(column_name=c, referenced_table=t) for c, t in foreign_keys
        ),
        child_relationships=tuple(
            ChildRelationshipSchema(child_table=t, field=f, relationship_name=r)
            for t, f, r in child_relationships
        ),
    )


@pytest.fixture
def crm_tables():
    account = make_table(
        "Account",
        [
            ("Id", "id"),
            ("Name", "string"),
            ColumnSchema(
                name="Industry",
                data_type="picklist",
                picklist_values=("Technology", "Finance"),
            ),
            ColumnSchema(name="OwnerId", data_type="reference", relationship_name="Owner"),
        ],
        foreign_keys=[("OwnerId", "User")],
        child_relationships=[
            ("Contact", "AccountId", "Contacts"),
            ("Opportunity", "AccountId", "Opportunities"),
            ("Case", "AccountId", "Cases"),
        ],
    )
    contact = make_table(
        "Contact",
        [
            ("Id", "id"),
            ("FirstName", "string"),
            ("LastName", "string"),
            ("Email", "email"),
            ("AccountId", "reference"),
            ("ReportsToId", "reference"),
        ],
        foreign_keys=[("AccountId", "Account"), ("ReportsToId", "Employee")],
    )
    opportunity = make_table(
        "Opportunity",
        [
            ("Id", "id"),
            ("Name", "string"),
            ("Amount", "currency"),
            ("CloseDate", "date"),
            ("AccountId", "reference"),
        ],
        foreign_keys=[("AccountId", "Account")],
    )
    user = make_table("User", [("Id", "id"), ("Name", "string")])
    case = make_table("Case", [("Id", "id"), ("Subject", "string"), ("AccountId", "reference")])
    audit = make_table("Audit", [("Id", "id"), ("Action", "string")])

    return [account, contact, opportunity, user, case, audit]


@pytest.fixture
def crm_graph(crm_tables):
    return SchemaGraph.from_tables(crm_tables)


@pytest.fixture
def account_graph():
    return SchemaGraph.from_tables([
        make_table("Account", [("Id", "id"), ("Name", "string"), ("Industry", "picklist")]),
    ])
