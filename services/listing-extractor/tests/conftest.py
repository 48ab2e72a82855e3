"""Shared test fixtures for listing extractor tests."""

import json
import sys
from pathlib import Path

import pytest

# Add parent directory to path so we can import the modules
sys.path.insert(0, str(Path(__file__).parent.parent))

ZILLOW_URL = "https://www.zillow.com/homedetails/123-Main-St-Provo-UT-84601/12345_zpid/"
REDFIN_URL = "https://www.redfin.com/UT/Orem/456-Oak-Ave-84057/home/55501"
UTAH_URL = "https://www.utahrealestate.com/report/1987321"
GENERIC_URL = "https://listings.example.com/property/42"


@pytest.fixture
def zillow_property() -> dict:
    """Property object as found in a Zillow client cache."""
    return {
        "zpid": 12345,
        "streetAddress": "123 Main St",
        "address": {
            "streetAddress": "123 Main St",
            "city": "Provo",
            "state": "UT",
            "zipcode": "84601",
        },
        "price": 525000,
        "bedrooms": 4,
        "bathrooms": 2.5,
        "livingArea": 2150,
        "homeStatus": "FOR_SALE",
        "homeType": "SINGLE_FAMILY",
        "yearBuilt": 1998,
        "lotAreaValue": 0.25,
        "lotAreaUnits": "Acres",
        "description": "Beautiful home close to BYU with a large backyard.",
        "attributionInfo": {"mlsId": "1987654"},
        "responsivePhotos": [
            {
                "mixedSources": {
                    "jpeg": [
                        {"url": "https://photos.zillowstatic.com/fp/abc123-cc_ft_384.jpg", "width": 384},
                        {"url": "https://photos.zillowstatic.com/fp/abc123-cc_ft_1536.jpg", "width": 1536},
                    ]
                }
            },
            {
                "mixedSources": {
                    "jpeg": [
                        {"url": "https://photos.zillowstatic.com/fp/def456-cc_ft_384.jpg", "width": 384},
                        {"url": "https://photos.zillowstatic.com/fp/def456-cc_ft_1536.jpg", "width": 1536},
                    ]
                }
            },
        ],
        "resoFacts": {
            "atAGlanceFacts": [
                {"factLabel": "Heating", "factValue": "Forced air"},
                {"factLabel": "Parking", "factValue": "2 Garage spaces"},
                {"factLabel": "HOA", "factValue": None},
            ]
        },
    }


def next_data_page(prop: dict, cache_key: str = 'ForSaleFullRenderQuery{"zpid":12345}') -> str:
    """Wrap a property in a Next.js page whose client cache is double-encoded."""
    cache = json.dumps({cache_key: {"property": prop}})
    next_data = {"props": {"pageProps": {"componentProps": {"gdpClientCache": cache}}}}
    return (
        "<html><head><title>123 Main St, Provo, UT 84601 | Zillow</title></head>"
        "<body><div id=\"app\">Loading</div>"
        f"<script id=\"__NEXT_DATA__\" type=\"application/json\">{json.dumps(next_data)}</script>"
        "</body></html>"
    )


@pytest.fixture
def zillow_html(zillow_property: dict) -> str:
    return next_data_page(zillow_property)


@pytest.fixture
def json_ld_html() -> str:
    listing = {
        "@context": "https://schema.org",
        "@type": "SingleFamilyResidence",
        "name": "456 Oak Ave, Orem, UT 84057",
        "address": {
            "@type": "PostalAddress",
            "streetAddress": "456 Oak Ave",
            "addressLocality": "Orem",
            "addressRegion": "UT",
            "postalCode": "84057",
        },
        "numberOfBedrooms": 3,
        "numberOfBathroomsTotal": 2,
        "floorSize": {"@type": "QuantitativeValue", "value": 1800, "unitCode": "FTK"},
        "yearBuilt": 1975,
        "description": "Updated rambler on a quiet street.",
        "image": ["https://ssl.cdn-redfin.com/photo/1/bigphoto/123.jpg"],
        "amenityFeature": [
            {"@type": "LocationFeatureSpecification", "name": "Garage", "value": True},
            {"@type": "LocationFeatureSpecification", "name": "Pool", "value": False},
        ],
        "offers": {"@type": "Offer", "price": "435000", "priceCurrency": "USD"},
    }
    return (
        "<html><head><title>456 Oak Ave, Orem, UT 84057 | Redfin</title>"
        f"<script type=\"application/ld+json\">{json.dumps(listing)}</script>"
        "<script type=\"application/ld+json\">{\"@type\": \"BreadcrumbList\"}</script>"
        "</head><body><p>Updated rambler in Orem</p></body></html>"
    )


@pytest.fixture
def utah_html() -> str:
    """utahrealestate.com style page: facts in og tags and visible text only."""
    return """
    <html>
      <head>
        <title>789 Pine Rd, Lehi, UT 84043</title>
        <meta property="og:title" content="$499,900 | 789 Pine Rd, Lehi, UT 84043">
        <meta property="og:description"
              content="Single family home listed for sale at $499,900. 4 beds, 3 baths.">
        <meta property="og:image"
              content="https://assets.utahrealestate.com/photos/640x480/1987321_1.jpg">
      </head>
      <body>
        <img src="/img/site-logo.png" alt="logo">
        <div class="facts">
          <span>4 Beds</span> <span>3 Baths</span> <span>2,600 Sq Ft</span>
        </div>
        <img src="/photos/1987321_2.jpg" alt="Kitchen">
      </body>
    </html>
    """


@pytest.fixture
def partial_html() -> str:
    """Address, price, 3 bedrooms, 2 bathrooms; no square footage, no MLS id."""
    return """
    <html>
      <head>
        <title>42 Elm Street | Example Realty</title>
        <meta property="og:title" content="42 Elm Street">
      </head>
      <body>
        <h1>42 Elm Street</h1>
        <div class="listing-price">$350,000</div>
        <ul><li>3 bd</li><li>2 ba</li></ul>
      </body>
    </html>
    """


@pytest.fixture
def block_page_html() -> str:
    return """
    <html>
      <head><title>Access to this page has been denied</title></head>
      <body>
        <div id="px-captcha"></div>
        <p>Please verify you are a human to continue.</p>
      </body>
    </html>
    """
