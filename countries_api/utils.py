import io
import logging
import os
import random

import requests
from PIL import Image, ImageDraw, ImageFont

from .exceptions import ExternalSourceUnavailable

COUNTRIES_SOURCE = "Countries API"
RATES_SOURCE = "Exchange rates API"

MULTIPLIER_RANGE = (1000, 2000)

FLAG_SIZE = (48, 32)
FLAG_TIMEOUT = 5

logger = logging.getLogger(__name__)


def _get_json(url, timeout, source):
    try:
        response = requests.get(url, timeout=timeout)
        response.raise_for_status()
        return response.json()
    except requests.exceptions.Timeout as exc:
        raise ExternalSourceUnavailable(source, f"request timed out after {timeout}s") from exc
    except requests.exceptions.RequestException as exc:
        raise ExternalSourceUnavailable(source, exc) from exc
    except ValueError as exc:
        # body was not JSON
        raise ExternalSourceUnavailable(source, f"invalid JSON payload: {exc}") from exc


def fetch_countries_data(url, timeout=30):
    data = _get_json(url, timeout, COUNTRIES_SOURCE)
    if not isinstance(data, list):
        raise ExternalSourceUnavailable(COUNTRIES_SOURCE, "expected a list of countries")
    return data


def fetch_exchange_rates(url, timeout=30):
    data = _get_json(url, timeout, RATES_SOURCE)
    rates = data.get('rates') if isinstance(data, dict) else None
    if not isinstance(rates, dict):
        raise ExternalSourceUnavailable(RATES_SOURCE, "response has no 'rates' mapping")
    return rates


def make_multiplier():
    return random.uniform(*MULTIPLIER_RANGE)


def extract_currency_code(currencies):
    """Return the code of the first listed currency; later entries are ignored."""
    if not currencies:
        return None

    first_currency = currencies[0] or {}
    return first_currency.get('code') or None


def lookup_exchange_rate(rates, currency_code):
    if not currency_code:
        return None

    rate_val = rates.get(currency_code)
    if not rate_val:
        return None
    try:
        return float(rate_val)
    except (TypeError, ValueError):
        return None


def calculate_estimated_gdp(population, exchange_rate, multiplier):
    if not population or population <= 0 or not exchange_rate:
        return None

    return (float(population) * multiplier) / float(exchange_rate)


def _load_fonts():
    try:
        return (
            ImageFont.truetype('DejaVuSans-Bold.ttf', 32),
            ImageFont.truetype('DejaVuSans-Bold.ttf', 24),
            ImageFont.truetype('DejaVuSans.ttf', 18),
            ImageFont.truetype('DejaVuSans.ttf', 14),
        )
    except OSError:
        default = ImageFont.load_default()
        return default, default, default, default


def load_flag_image(flag_url, timeout=FLAG_TIMEOUT):
    """
    Download a raster flag and scale it to ``FLAG_SIZE``. Returns None for
    SVG flags (Pillow cannot decode them) and for any download or decode error.
    """
    if not flag_url or flag_url.lower().split('?', 1)[0].endswith('.svg'):
        return None

    try:
        response = requests.get(flag_url, timeout=timeout)
        response.raise_for_status()
        with Image.open(io.BytesIO(response.content)) as flag:
            return flag.convert('RGB').resize(FLAG_SIZE)
    except (requests.exceptions.RequestException, OSError) as exc:
        logger.warning("Could not load flag %s: %s", flag_url, exc)
        return None


def _draw_flag(image, draw, position, flag):
    x, y = position
    if flag is None:
        draw.rectangle([x, y, x + FLAG_SIZE[0] - 1, y + FLAG_SIZE[1] - 1], fill=(230, 230, 230), outline=(160, 160, 160))
        return
    image.paste(flag, (x, y))


def generate_summary_image(total_countries, top_5_countries, timestamp, image_path, flag_loader=load_flag_image):
    """
    Draw the summary PNG: total count, top 5 by estimated GDP with their
    flags (a grey box when a flag cannot be drawn) and the last refresh time.
    The file at ``image_path`` is overwritten.
    """
    width = 800
    height = 600
    background_color = (255, 255, 255)
    text_color = (0, 0, 0)
    header_color = (41, 128, 185)

    image = Image.new('RGB', (width, height), background_color)
    draw = ImageDraw.Draw(image)
    title_font, header_font, text_font, small_font = _load_fonts()

    draw.text((50, 30), "Country Summary", fill=header_color, font=title_font)

    y_position = 100
    draw.text((50, y_position), f"Total Countries: {total_countries}", fill=text_color, font=header_font)

    y_position += 60
    draw.text((50, y_position), "Top 5 Countries by Estimated GDP:", fill=header_color, font=header_font)

    y_position += 45
    if not top_5_countries:
        draw.text((70, y_position), "No GDP data available.", fill=(128, 128, 128), font=text_font)
        y_position += 35
    for idx, country in enumerate(top_5_countries, 1):
        _draw_flag(image, draw, (70, y_position), flag_loader(country.get('flag_url')))
        estimated_gdp = country.get('estimated_gdp')
        gdp_formatted = f"${estimated_gdp:,.2f}" if estimated_gdp is not None else "N/A"
        draw.text((130, y_position + 6), f"{idx}. {country.get('name', 'N/A')}: {gdp_formatted}",
                  fill=text_color, font=text_font)
        y_position += 50

    timestamp_str = timestamp.strftime("%Y-%m-%d %H:%M:%S UTC") if timestamp else "N/A"
    draw.text((50, height - 60), f"Last Refreshed: {timestamp_str}", fill=text_color, font=small_font)

    directory = os.path.dirname(image_path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    image.save(image_path, 'PNG')

    return image_path


def get_summary_image_path(image_path):
    if os.path.exists(image_path):
        return image_path

    return None
