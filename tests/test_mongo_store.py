from bson import ObjectId

from stores.MongoDocumentStore import MongoDocumentStore
from synthesis.predicates import And, Eq, In, Or, Range


def test_string_ids_become_object_ids() -> None:
    store = MongoDocumentStore({})
    oid = ObjectId()
    predicate = Or(
        Range("createdAt", lt=5),
        And(Eq("createdAt", 5), Range("_id", lt=str(oid))),
    )
    assert store.filter(predicate) == {
        "$or": [
            {"createdAt": {"$lt": 5}},
            {"$and": [{"createdAt": 5}, {"_id": {"$lt": oid}}]},
        ]
    }
    assert store.filter(In("_id", [str(oid), "not-an-id"])) == {"_id": {"$in": [oid, "not-an-id"]}}
    assert store.filter(Eq("user", str(oid))) == {"user": str(oid)}
