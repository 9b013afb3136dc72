"""Gemini API client for advisory features (price suggestions, barcode lookup, assistant)."""
import json
import logging
from typing import Any, Dict, List, Optional

import requests
from flask import current_app, has_app_context

from storeflex.exceptions import AIServiceUnavailableError, ValidationError
from storeflex.services.activity_service import fetch_financial_activities
from storeflex.services.dashboard_service import get_dashboard_data
from storeflex.utils.money import as_float

logger = logging.getLogger(__name__)


class GeminiClient:
    """Client for the hosted Gemini ``generateContent`` endpoint."""

    BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
    DEFAULT_MODEL = "gemini-2.0-flash"

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None,
                 base_url: Optional[str] = None, timeout: Optional[int] = None):
        """
        Initialize the client.

        Args:
            api_key: Gemini API key. If None, reads GEMINI_API_KEY from the app config
            model: Model name (GEMINI_MODEL)
            base_url: API root (GEMINI_API_URL)
            timeout: Request timeout in seconds (AI_REQUEST_TIMEOUT)

        Raises:
            AIServiceUnavailableError: if no API key is configured
        """
        config = current_app.config if has_app_context() else {}
        self.api_key = api_key or config.get('GEMINI_API_KEY')
        if not self.api_key:
            raise AIServiceUnavailableError("AI features are not configured (GEMINI_API_KEY is missing)")
        self.model = model or config.get('GEMINI_MODEL') or self.DEFAULT_MODEL
        self.base_url = (base_url or config.get('GEMINI_API_URL') or self.BASE_URL).rstrip('/')
        self.timeout = timeout or config.get('AI_REQUEST_TIMEOUT', 20)
        self.headers = {'Content-Type': 'application/json'}

    def generate_json(self, prompt: str) -> Dict[str, Any]:
        """
        Send a prompt and parse the JSON object the model answers with.

        Raises:
            AIServiceUnavailableError: on HTTP errors, timeouts or unparsable output
        """
        url = f"{self.base_url}/models/{self.model}:generateContent"
        payload = {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": {"responseMimeType": "application/json"},
        }

        logger.info(f"[AI] generateContent model={self.model}")
        try:
            response = requests.post(
                url, params={'key': self.api_key}, json=payload, headers=self.headers, timeout=self.timeout
            )
            response.raise_for_status()
            data = response.json()
        except requests.HTTPError as e:
            logger.error(f"[AI] HTTP error: {e.response.status_code if e.response is not None else e}")
            raise AIServiceUnavailableError("AI service returned an error")
        except (requests.RequestException, ValueError) as e:
            logger.error(f"[AI] Request failed: {e}")
            raise AIServiceUnavailableError()

        try:
            text = data['candidates'][0]['content']['parts'][0]['text']
            result = json.loads(text)
        except (KeyError, IndexError, TypeError, ValueError):
            logger.error(f"[AI] Unparsable response: {str(data)[:500]}")
            raise AIServiceUnavailableError("AI service returned an unexpected answer")
        if not isinstance(result, dict):
            raise AIServiceUnavailableError("AI service returned an unexpected answer")
        return result

    def suggest_price(self, product_name: str, category: Optional[str], cost_price: Any,
                      current_price: Any, sales_history: Optional[List[Dict[str, Any]]] = None) -> Dict[str, Any]:
        """
        Returns:
            Dict with suggested_price (float) and reasoning (str)
        """
        if not product_name:
            raise ValidationError('Product name is required')
        prompt = (
            "You are a retail pricing assistant for a small store. "
            "Suggest a selling price for the product below. Answer with JSON only: "
            '{"suggestedPrice": number, "reasoning": string}.\n'
            f"Product: {product_name}\n"
            f"Category: {category or 'unknown'}\n"
            f"Unit cost: {cost_price}\n"
            f"Current selling price: {current_price}\n"
            f"Recent sales: {json.dumps(sales_history or [], default=str)}"
        )
        result = self.generate_json(prompt)
        try:
            suggested = float(result.get('suggestedPrice', result.get('suggested_price')))
        except (TypeError, ValueError):
            raise AIServiceUnavailableError("AI service did not return a price")
        return {'suggested_price': round(suggested, 2), 'reasoning': str(result.get('reasoning') or '')}

    def lookup_barcode(self, barcode: str) -> Dict[str, Any]:
        """
        Returns:
            Dict with name, brand (may be None) and category
        """
        barcode = (barcode or '').strip()
        if not barcode:
            raise ValidationError('Barcode is required')
        prompt = (
            "Identify the retail product with this barcode. Answer with JSON only: "
            '{"name": string, "brand": string or null, "category": string}.\n'
            f"Barcode: {barcode}"
        )
        result = self.generate_json(prompt)
        if not result.get('name'):
            raise AIServiceUnavailableError("Product not recognised")
        return {
            'name': result.get('name'),
            'brand': result.get('brand') or None,
            'category': result.get('category') or None,
        }

    def ask_assistant(self, question: str, context: Dict[str, Any]) -> Dict[str, Any]:
        """
        Returns:
            Dict with answer (str)
        """
        question = (question or '').strip()
        if not question:
            raise ValidationError('Question is required')
        prompt = (
            "You are the business assistant of a small retail store. Use only the data below. "
            'Answer with JSON only: {"answer": string}.\n'
            f"Store data: {json.dumps(context, default=str)}\n"
            f"Question: {question}"
        )
        result = self.generate_json(prompt)
        return {'answer': str(result.get('answer') or '')}


def build_assistant_context(session, tenant_id: int, activity_limit: int = 20) -> Dict[str, Any]:
    """Snapshot of dashboard figures and recent financial activity for the assistant prompt."""
    dashboard = get_dashboard_data(session, tenant_id)
    return {
        'inventory_value': as_float(dashboard['inventory_value']),
        'product_count': dashboard['product_count'],
        'sales_today': as_float(dashboard['sales_today']),
        'total_sales': as_float(dashboard['total_sales']),
        'receivables_total': as_float(dashboard['receivables_total']),
        'payables_total': as_float(dashboard['payables_total']),
        'profit_month': as_float(dashboard['profit_month']),
        'low_stock_products': [p['name'] for p in dashboard['low_stock_products']],
        'recent_transactions': [
            a.details for a in fetch_financial_activities(session, tenant_id, limit=activity_limit)
        ],
    }
