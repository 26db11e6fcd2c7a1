"""
Rules API - FastAPI router for inspecting and trying out markup rules.
"""
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from ..engine.rule_matcher import PricingRule, RuleMatcher, describe_markup
from ..rules.records import validate_rule_rows
from ..services.storefront_service import OrganizationNotFound, StorefrontService
from .state import get_service

router = APIRouter(prefix="/api/v1/orgs/{org_id}/rules", tags=["rules"])


class RuleResponse(BaseModel):
    """Response model for a rule."""
    rule_id: str
    name: str
    description: str
    priority: int
    active: bool
    countries: list[str]
    regions: list[str]
    excluded_countries: list[str]
    markup: dict
    min_transaction_amount: Optional[float]
    max_transaction_amount: Optional[float]


class ValidateRulesRequest(BaseModel):
    """Rule rows as they would appear in pricing_rules.csv."""
    rows: list[dict]


class ValidationResponse(BaseModel):
    """Response model for validation."""
    valid: bool
    errors: list[str]
    rules_parsed: int


class TestRuleRequest(BaseModel):
    """Request model for testing rules."""
    country_code: str
    cost_price: float = Field(allow_inf_nan=False)


class TestRuleResponse(BaseModel):
    """Response model for rule test."""
    matched_rule: Optional[dict]
    cost_price: float
    markup: float
    price_after_markup: float


def _rule_response(rule: PricingRule) -> RuleResponse:
    return RuleResponse(
        rule_id=rule.rule_id,
        name=rule.name,
        description=rule.description,
        priority=rule.priority,
        active=rule.is_active,
        countries=sorted(rule.scope.countries),
        regions=list(rule.scope.regions),
        excluded_countries=sorted(rule.scope.excluded),
        markup=describe_markup(rule.markup),
        min_transaction_amount=(
            float(rule.min_transaction_amount) if rule.min_transaction_amount is not None else None),
        max_transaction_amount=(
            float(rule.max_transaction_amount) if rule.max_transaction_amount is not None else None),
    )


def _org_rules(service: StorefrontService, org_id: str) -> list[PricingRule]:
    try:
        return service.get_config(org_id).rules
    except OrganizationNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))


# Endpoints

@router.get("", response_model=list[RuleResponse])
async def list_rules(org_id: str, include_inactive: bool = True,
                     service: StorefrontService = Depends(get_service)):
    """List an organization's pricing rules, highest priority first."""
    rules = _org_rules(service, org_id)
    if not include_inactive:
        rules = [r for r in rules if r.is_active]
    ordered = sorted(rules, key=lambda r: r.priority, reverse=True)
    return [_rule_response(r) for r in ordered]


@router.post("/validate", response_model=ValidationResponse)
async def validate_rules(org_id: str, request: ValidateRulesRequest):
    """Validate rule rows without saving."""
    rules, errors = validate_rule_rows(request.rows)
    return ValidationResponse(valid=not errors, errors=errors, rules_parsed=len(rules))


@router.post("/test", response_model=TestRuleResponse)
async def test_rules(org_id: str, request: TestRuleRequest,
                     service: StorefrontService = Depends(get_service)):
    """Show which rule would price a cost for a country, and the markup it adds."""
    matcher = RuleMatcher(_org_rules(service, org_id))
    try:
        result = matcher.apply(request.cost_price, request.country_code.strip().upper())
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    matched_rule = None
    if result.rule:
        matched_rule = {
            "rule_id": result.rule.rule_id,
            "name": result.rule.name,
            "priority": result.rule.priority,
            "match_reason": result.match_reason,
            **describe_markup(result.rule.markup),
        }

    return TestRuleResponse(
        matched_rule=matched_rule,
        cost_price=float(result.cost_price),
        markup=float(result.markup),
        price_after_markup=float(result.price_after_markup),
    )
