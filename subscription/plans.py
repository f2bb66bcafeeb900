"""
Plan Catalog

Static pricing table for the TermiVoxed plans. Amounts are in paise.
Recurring plan ids are created in the Razorpay dashboard
(Subscriptions > Plans > Create Plan) and supplied through configuration.
"""

from types import MappingProxyType
from typing import Dict, Mapping, Optional, Tuple, Any

from subscription.errors import InvalidPlanError, InvalidRequestError
from subscription.models import (
    UNLIMITED,
    BillingPeriod,
    Plan,
    PlanFeatures,
    PlanId,
    Pricing,
)


RecurringPlanIds = Mapping[Tuple[PlanId, BillingPeriod], str]


class PlanCatalog:
    """Read-only lookup of plans by id"""

    def __init__(self, plans: Mapping[PlanId, Plan]):
        self._plans = MappingProxyType(dict(plans))

    def __iter__(self):
        return iter(self._plans.values())

    def __len__(self) -> int:
        return len(self._plans)

    def lookup(self, plan_id: Optional[str]) -> Plan:
        """Return the plan for plan_id or raise InvalidPlanError"""
        try:
            return self._plans[PlanId(plan_id)]
        except (ValueError, KeyError):
            raise InvalidPlanError()

    def resolve(
        self,
        plan_id: Optional[str],
        billing_period: Optional[str],
    ) -> Tuple[Plan, BillingPeriod, Pricing]:
        """
        Validate a checkout selection.

        The plan is checked before the billing period so callers always see
        "Invalid plan" for an unknown plan regardless of the period sent.
        """
        plan = self.lookup(plan_id)
        try:
            period = BillingPeriod(billing_period)
        except ValueError:
            raise InvalidRequestError("Invalid billing period")
        return plan, period, plan.pricing_for(period)

    def plan_name(self, plan_id: str) -> str:
        try:
            return self.lookup(plan_id).name
        except InvalidPlanError:
            return plan_id

    def as_public_dict(self) -> Dict[str, Any]:
        return {plan.id.value: plan.to_dict() for plan in self}


def build_plan_catalog(recurring_plan_ids: Optional[RecurringPlanIds] = None) -> PlanCatalog:
    """Build the catalog, attaching Razorpay recurring plan ids where configured"""
    ids = recurring_plan_ids or {}

    def pricing(plan_id: PlanId, period: BillingPeriod, amount: int) -> Pricing:
        return Pricing(
            amount=amount,
            currency="INR",
            external_plan_id=ids.get((plan_id, period), "") if amount else "",
        )

    plans = {
        PlanId.INDIVIDUAL: Plan(
            id=PlanId.INDIVIDUAL,
            name="Individual",
            monthly=pricing(PlanId.INDIVIDUAL, BillingPeriod.MONTHLY, 19900),   # Rs.199
            yearly=pricing(PlanId.INDIVIDUAL, BillingPeriod.YEARLY, 200400),    # Rs.167 x 12
            features=PlanFeatures(
                exports_per_month=200,
                max_video_duration=30,
                devices=2,
                priority_support=True,
                premium_voices=True,
            ),
        ),
        PlanId.PRO: Plan(
            id=PlanId.PRO,
            name="Pro",
            monthly=pricing(PlanId.PRO, BillingPeriod.MONTHLY, 39900),          # Rs.399
            yearly=pricing(PlanId.PRO, BillingPeriod.YEARLY, 399600),           # Rs.333 x 12
            features=PlanFeatures(
                exports_per_month=UNLIMITED,
                max_video_duration=60,
                devices=3,
                priority_support=True,
                premium_voices=True,
                voice_cloning=True,
                api_access=True,
            ),
        ),
        PlanId.ENTERPRISE: Plan(
            id=PlanId.ENTERPRISE,
            name="Enterprise",
            # Custom pricing through sales
            monthly=pricing(PlanId.ENTERPRISE, BillingPeriod.MONTHLY, 0),
            yearly=pricing(PlanId.ENTERPRISE, BillingPeriod.YEARLY, 0),
            features=PlanFeatures(
                exports_per_month=2000,
                max_video_duration=120,
                devices=50,
                priority_support=True,
                premium_voices=True,
                voice_cloning=True,
                api_access=True,
                custom_branding=True,
                sla_guarantee=True,
            ),
        ),
    }
    return PlanCatalog(plans)
