"""
Integrity Endpoint

Exposes the fact table integrity report of the loaded star schema.
"""

from typing import Any, Dict

from fastapi import APIRouter, Depends

from ecommerce_star.quality.integrity import IntegrityChecker
from ecommerce_star.serving.api.dependencies import get_schema
from ecommerce_star.transformation.transformers import StarSchema

router = APIRouter()


@router.get("/integrity")
def get_integrity(schema: StarSchema = Depends(get_schema)) -> Dict[str, Any]:
    """Null and orphan counts per fact column"""
    report = schema.integrity or IntegrityChecker(schema.dims).check(schema.facts)
    return report.to_dict()
