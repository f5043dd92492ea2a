from typing import List

from sqlalchemy.orm import Session

from app.models.database import TestCaseModel
from app.models.schemas import TestCase, TestCaseCreate
from app.repositories.interfaces.test_case_repository import ITestCaseRepository


class SQLTestCaseRepository(ITestCaseRepository):
    """SQLAlchemy implementation of test case repository"""

    def __init__(self, db: Session):
        self.db = db

    async def create_many(self, test_cases: List[TestCaseCreate]) -> List[TestCase]:
        """Persist a batch of generated test cases in one transaction"""
        rows = [TestCaseModel(**test_case.model_dump()) for test_case in test_cases]
        try:
            self.db.add_all(rows)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        for row in rows:
            self.db.refresh(row)
        return [TestCase.model_validate(row) for row in rows]

    async def list_by_analysis(self, analysis_id: str) -> List[TestCase]:
        rows = (
            self.db.query(TestCaseModel)
            .filter(TestCaseModel.analysis_id == analysis_id)
            .order_by(TestCaseModel.id)
            .all()
        )
        return [TestCase.model_validate(row) for row in rows]
