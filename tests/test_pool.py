import unittest

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from surveydraw.draw.errors import EmptyPoolError
from surveydraw.draw.pool import assemble_pool, canonicalize_pool, compute_pool_hash
from surveydraw.models import Base, SurveyInstance, SurveyResponse


class TestCanonicalizePool(unittest.TestCase):
    def test_sorts_and_deduplicates(self):
        self.assertEqual(canonicalize_pool(["b", "a", "c", "a"]), ["a", "b", "c"])

    def test_code_point_order(self):
        self.assertEqual(canonicalize_pool(["b", "B", "a", "A"]), ["A", "B", "a", "b"])

    def test_rejects_non_string_tokens(self):
        with self.assertRaises(TypeError):
            canonicalize_pool(["a", 1])  # type: ignore[list-item]
        with self.assertRaises(ValueError):
            canonicalize_pool(["a", ""])

    def test_pool_hash_vector(self):
        self.assertEqual(
            compute_pool_hash(["t1", "t2", "t3"]),
            "309f11261e16475848243d12b6736459b48e13c181f20d11bcf09bcfeddf9e0d",
        )

    def test_length_framing_separates_tokens(self):
        self.assertNotEqual(compute_pool_hash(["ab", "c"]), compute_pool_hash(["a", "bc"]))


class TestAssemblePool(unittest.TestCase):
    def setUp(self) -> None:
        self.engine = create_engine("sqlite+pysqlite:///:memory:", future=True)
        Base.metadata.create_all(self.engine)
        self.Session = sessionmaker(
            bind=self.engine, future=True, expire_on_commit=False
        )

    def tearDown(self) -> None:
        self.engine.dispose()

    def test_reads_only_tokens_of_instance(self):
        with self.Session() as session:
            instance = SurveyInstance(program_name="Pulse", draw_enabled=True)
            other = SurveyInstance(program_name="Other", draw_enabled=True)
            session.add_all([instance, other])
            session.flush()
            session.add_all(
                [
                    SurveyResponse(instance_id=instance.id, draw_token="EAP-C"),
                    SurveyResponse(instance_id=instance.id, draw_token="EAP-A"),
                    SurveyResponse(instance_id=instance.id, draw_token=None),
                    SurveyResponse(instance_id=instance.id, draw_token="EAP-B"),
                    SurveyResponse(instance_id=other.id, draw_token="EAP-Z"),
                ]
            )
            session.flush()

            pool = assemble_pool(session, instance.id)

        self.assertEqual(pool, ["EAP-A", "EAP-B", "EAP-C"])

    def test_empty_pool_raises(self):
        with self.Session() as session:
            instance = SurveyInstance(program_name="Pulse", draw_enabled=True)
            session.add(instance)
            session.flush()
            session.add(SurveyResponse(instance_id=instance.id, draw_token=None))
            session.flush()

            with self.assertRaises(EmptyPoolError) as ctx:
                assemble_pool(session, instance.id)

        self.assertEqual(ctx.exception.code, "empty_pool")
        self.assertEqual(ctx.exception.instance_id, instance.id)


if __name__ == "__main__":
    unittest.main()
