"""Candidate data and email copy for offer letters."""

from datetime import date, timedelta
from html import escape

from offerflow.config import settings
from offerflow.schemas.application import ApplicationContext
from offerflow.utils.filesystem import sanitize_filename


def format_salary_range(ctx: ApplicationContext) -> str:
    if ctx.salary_min is None and ctx.salary_max is None:
        return settings.default_salary
    currency = ctx.currency or "USD"
    if ctx.salary_min is not None and ctx.salary_max is not None:
        return f"{currency} {ctx.salary_min:,} - {ctx.salary_max:,}"
    return f"{currency} {(ctx.salary_min if ctx.salary_min is not None else ctx.salary_max):,}"


def format_candidate_data_for_offer(ctx: ApplicationContext, today: date | None = None) -> dict:
    """Build the merge data the document service fills into the offer template."""
    start = (today or date.today()) + timedelta(days=settings.offer_start_offset_days)
    return {
        "candidate_name": ctx.candidate_name,
        "position": ctx.job_title,
        "salary": format_salary_range(ctx),
        "start_date": start.isoformat(),
        "company_name": settings.company_name,
        "candidate_email": ctx.email,
        "job_location": ctx.job_location,
        "expected_salary": f"{ctx.expected_salary:,}" if ctx.expected_salary else "Negotiable",
        "experience_years": ctx.experience_years or 0,
        "current_location": ctx.current_location or "Not specified",
    }


def offer_subject(position: str) -> str:
    return f"Job Offer - {position}"


def offer_attachment_name(first_name: str, last_name: str) -> str:
    return sanitize_filename(f"offer_letter_{first_name}_{last_name}.pdf")


def generate_offer_email_content(candidate_name: str, position: str) -> str:
    days = settings.response_window_business_days
    company = escape(settings.company_name)
    candidate_name = escape(candidate_name)
    position = escape(position)
    return f"""\
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
  <h1 style="color: #2563eb; margin-bottom: 20px;">Congratulations {candidate_name}!</h1>
  <p style="font-size: 16px; line-height: 1.5;">
    We are delighted to extend an offer for the position of <strong>{position}</strong> at {company}.
  </p>
  <p style="font-size: 16px; line-height: 1.5;">
    Please find your detailed offer letter attached to this email. The offer contains:
  </p>
  <ul style="font-size: 14px; line-height: 1.6;">
    <li>Complete compensation details</li>
    <li>Job responsibilities and expectations</li>
    <li>Benefits and perks</li>
    <li>Start date and other important information</li>
  </ul>
  <p style="font-size: 16px; line-height: 1.5;">
    Please review the offer carefully and respond within <strong>{days} business days</strong>.
    If you have any questions, please don't hesitate to reach out.
  </p>
  <p style="font-size: 16px; line-height: 1.5;">We look forward to welcoming you to our team!</p>
  <div style="border-top: 1px solid #e5e7eb; padding-top: 20px; margin-top: 30px;">
    <p style="font-size: 14px; color: #6b7280; margin: 0;">Best regards,<br>HR Team<br>{company}</p>
  </div>
</div>
"""
