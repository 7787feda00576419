import logging

from django.contrib.auth.decorators import login_required
from django.http import JsonResponse
from django.views.decorators.http import require_GET, require_http_methods, require_POST

from .exceptions import AnalyticsError
from .forms import BlacklistForm, DateRangeForm, RiskAssessmentForm
from .models import BlacklistEntry
from .services import (
    add_to_blacklist,
    assess_order_risk,
    build_dashboard,
    customer_orders,
    customer_risk_overview,
    order_risk_breakdown,
    remove_from_blacklist,
)

logger = logging.getLogger(__name__)


def _form_error(form) -> JsonResponse:
    return JsonResponse({"error": "表单无效", "fields": form.errors.get_json_data()}, status=400)


@login_required
@require_GET
def dashboard_view(request):
    form = DateRangeForm(request.GET)
    if not form.is_valid():
        return _form_error(form)
    try:
        dashboard = build_dashboard(
            request.user,
            form.cleaned_data.get("range") or None,
            form.cleaned_data.get("date_from"),
            form.cleaned_data.get("date_to"),
        )
    except AnalyticsError as exc:
        logger.warning("Rejected dashboard request: %s", exc)
        return JsonResponse({"error": str(exc)}, status=400)
    return JsonResponse(dashboard)


@login_required
@require_GET
def customers_view(request):
    return JsonResponse({"customers": customer_risk_overview(request.user)})


@login_required
@require_GET
def customer_orders_view(request, phone):
    return JsonResponse(customer_orders(request.user, phone))


@login_required
@require_http_methods(["GET", "POST"])
def blacklist_view(request):
    if request.method == "POST":
        form = BlacklistForm(request.POST)
        if not form.is_valid():
            return _form_error(form)
        entry = add_to_blacklist(request.user, form.cleaned_data["phone"], form.cleaned_data.get("reason", ""))
        return JsonResponse(
            {"phone": entry.phone, "reason": entry.reason, "created_at": entry.created_at},
            status=201,
        )
    entries = BlacklistEntry.objects.filter(user=request.user).values("phone", "reason", "created_at")
    return JsonResponse({"blacklist": list(entries)})


@login_required
@require_POST
def blacklist_remove_view(request, phone):
    if not remove_from_blacklist(request.user, phone):
        return JsonResponse({"error": "黑名单中不存在该手机号"}, status=404)
    return JsonResponse({"removed": phone})


@login_required
@require_GET
def assess_risk_view(request):
    form = RiskAssessmentForm(request.GET)
    if not form.is_valid():
        return _form_error(form)
    data = form.cleaned_data
    assessment = assess_order_risk(
        request.user,
        data.get("payment_method"),
        data.get("amount") or 0,
        data.get("phone"),
        address=data.get("address"),
        product=data.get("product"),
    )
    body = assessment.as_dict()
    body["breakdown"] = order_risk_breakdown(
        request.user,
        data.get("payment_method"),
        data.get("amount") or 0,
        data.get("phone"),
        product=data.get("product"),
    )
    return JsonResponse(body)
