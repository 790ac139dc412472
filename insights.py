import json
import logging

import google.generativeai as genai

import config
from balance import top_debtors
from links import format_currency

logger = logging.getLogger(__name__)

FALLBACK_SUMMARY = "Business is operating normally. Keep tracking your dues regularly."
FALLBACK_ACTIONS = ["Review pending payments", "Follow up with top debtors", "Maintain accurate records"]


def fallback_insight():
    return {"summary": FALLBACK_SUMMARY, "actionItems": list(FALLBACK_ACTIONS)}


def build_prompt(customers, transactions, stats):
    debtors = ", ".join(f"{c['name']}: {format_currency(c['due'])}" for c in top_debtors(customers, 3))
    return f"""
As a business consultant, analyze this ledger data for an Indian business:
Total Customers: {len(customers)}
Total Transactions: {len(transactions)}
Total Sales: {format_currency(stats['totalSales'])}
Total Due: {format_currency(stats['totalDue'])}
Daily Sales: {format_currency(stats['dailySales'])}
Monthly Sales: {format_currency(stats['monthlySales'])}

Top Debtors: {debtors or 'None'}

Provide a brief executive summary (max 2 sentences) and 3 specific action items for the business owner.
Return ONLY valid JSON: {{"summary": "...", "actionItems": ["...", "...", "..."]}}
""".strip()


def parse_insight(text):
    try:
        obj = json.loads(text or "")
    except ValueError:
        return None
    if not isinstance(obj, dict):
        return None

    summary = obj.get("summary")
    actions = obj.get("actionItems")
    if not isinstance(summary, str) or not isinstance(actions, list):
        return None
    if not all(isinstance(a, str) for a in actions):
        return None
    return {"summary": summary, "actionItems": actions}


def get_business_insights(customers, transactions, stats, api_key=None, model_name=None):
    """
    Asks Gemini for a short summary and action list.
    Never raises: any failure returns the fixed fallback.
    """
    api_key = config.GEMINI_API_KEY if api_key is None else api_key
    if not api_key:
        logger.info("No GEMINI_API_KEY set, using fallback insights")
        return fallback_insight()

    try:
        genai.configure(api_key=api_key)
        model = genai.GenerativeModel(model_name or config.GEMINI_MODEL)
        response = model.generate_content(
            build_prompt(customers, transactions, stats),
            generation_config={"response_mime_type": "application/json"},
        )
        text = response.text
    except Exception as e:
        # The SDK raises a wide mix of error types (auth, quota, blocked output)
        logger.error("AI Insight Error: %s", e)
        return fallback_insight()

    result = parse_insight(text)
    if result is None:
        logger.warning("AI Insight returned unusable JSON")
        return fallback_insight()
    return result
