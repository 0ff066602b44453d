from django.utils.deprecation import MiddlewareMixin
from .models import Company

# Session key holding the id of the company the user is working on
ACTIVE_COMPANY_SESSION_KEY = "active_company_id"


class CurrentCompanyMiddleware(MiddlewareMixin):
    # Run on every request and
    # attach a .company attribute to the request, based on the session
    def process_request(self, request):
        request.company = None

        session = getattr(request, "session", None)
        if session is None:
            return

        # The active company is chosen via POST /api/companies/<id>/activate
        company_id = session.get(ACTIVE_COMPANY_SESSION_KEY)
        if company_id is None:
            return
        try:
            request.company = Company.objects.get(pk=company_id)
        except (Company.DoesNotExist, ValueError, TypeError):
            # stale or tampered session value → no active company
            request.company = None
