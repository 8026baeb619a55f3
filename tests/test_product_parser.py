"""Tests for the product page parser strategies."""

import json

from parsers.field_patterns import ONE_MG, first_match, label_value, regex_extractor
from parsers.product_parser import (
    NO_COMPOSITION_WARNING,
    NO_MANUFACTURER_WARNING,
    NO_NAME_WARNING,
    NO_PRICE_WARNING,
    ProductParser,
    extract_medicine_details,
    extract_title,
    name_from_url,
)
from utils.helpers import build_soup


def _json_ld(payload) -> str:
    return f'<script type="application/ld+json">{json.dumps(payload)}</script>'


def test_structured_data_product() -> None:
    html = (
        "<html><head>"
        + _json_ld(
            {
                "@context": "https://schema.org",
                "@type": "Product",
                "name": "Paracetamol 650",
                "offers": {"@type": "Offer", "price": 20, "priceCurrency": "INR"},
            }
        )
        + "</head><body></body></html>"
    )

    parsed = ProductParser().parse(html, "https://pharmacy.example/p/paracetamol-650")

    assert parsed.strategy == "structured_data"
    assert parsed.medicine.name == "Paracetamol 650"
    assert parsed.medicine.price == 20.0
    assert NO_PRICE_WARNING not in parsed.warnings


def test_structured_data_drug_in_graph_with_details() -> None:
    html = _json_ld({"@graph": [{"@type": "WebPage"}, "not an object"]}) + _json_ld(
        {
            "@type": ["Drug", "Product"],
            "name": "Augmentin 625 Duo Tablet",
            "manufacturer": {"@type": "Organization", "name": "GlaxoSmithKline"},
            "activeIngredient": ["Amoxycillin (500mg)", "Clavulanic Acid (125mg)"],
            "prescriptionStatus": "PrescriptionOnly",
            "image": [{"url": "/images/augmentin.jpg"}],
            "offers": [{"price": "₹201.60", "highPrice": "224"}],
        }
    )

    parsed = ProductParser().parse(html, "https://www.1mg.com/drugs/augmentin-625-duo-tablet-138629")
    medicine = parsed.medicine

    assert medicine.manufacturer == "GlaxoSmithKline"
    assert medicine.composition == "Amoxycillin (500mg), Clavulanic Acid (125mg)"
    assert medicine.requires_prescription is True
    assert medicine.price == 201.6
    assert medicine.original_price == 224.0
    assert medicine.image_url == "https://www.1mg.com/images/augmentin.jpg"
    assert parsed.warnings == []


def test_malformed_json_ld_falls_through_to_opengraph() -> None:
    html = (
        '<script type="application/ld+json">{"@type": "Product", </script>'
        '<meta property="og:title" content="Crocin Advance 500mg Tablet">'
        '<meta property="product:price:amount" content="30.5">'
        '<meta property="og:image" content="https://cdn.test/crocin.png">'
    )

    parsed = ProductParser().parse(html, "https://shop.test/crocin")

    assert parsed.strategy == "opengraph"
    assert parsed.medicine.name == "Crocin Advance 500mg Tablet"
    assert parsed.medicine.price == 30.5
    assert parsed.medicine.dosage == "500mg"
    assert parsed.medicine.image_url == "https://cdn.test/crocin.png"


def test_generic_page_on_unknown_domain() -> None:
    html = "<html><head><title>Cough Relief Syrup | HealthShop</title></head><body>Hello</body></html>"

    parsed = ProductParser().parse(html, "https://healthshop.example/products/cough-relief")

    assert parsed.strategy == "generic"
    assert parsed.medicine.name == "Cough Relief Syrup"
    assert parsed.medicine.price == 0
    assert NO_PRICE_WARNING in parsed.warnings
    assert NO_MANUFACTURER_WARNING in parsed.warnings
    assert NO_COMPOSITION_WARNING in parsed.warnings


def test_retailer_patterns_for_1mg_markup() -> None:
    html = """
    <html><head><title>Dolo 650 Tablet: View Uses | 1mg</title></head><body>
      <h1 class="DrugHeader__title-content___2ZaPo">Dolo 650 Tablet</h1>
      <div class="DrugHeader__meta-value___vqYM0"><a href="/manufacturer/micro">Micro Labs Ltd</a></div>
      <div class="saltInfo DrugHeader__meta-value"><a href="/generics/paracetamol">Paracetamol (650mg)</a></div>
      <span class="DrugPriceBox__best-price___32JXw">₹30.91</span>
      <span class="DrugPriceBox__slashed-price___2UGqd">MRP ₹33.60</span>
      <div>strip of 15 tablets</div>
      <p>Prescription Required</p>
      <img src="https://onemg.gumlet.io/images/dolo.jpg">
    </body></html>
    """

    parsed = ProductParser().parse(html, "https://www.1mg.com/drugs/dolo-650-tablet-74467")
    medicine = parsed.medicine

    assert parsed.strategy == "retailer:1mg"
    assert medicine.name == "Dolo 650 Tablet"
    assert medicine.manufacturer == "Micro Labs Ltd"
    assert medicine.composition == "Paracetamol (650mg)"
    assert medicine.price == 30.91
    assert medicine.original_price == 33.6
    assert medicine.discount_percentage == 8.01
    assert medicine.pack_size == "15 tablets"
    assert medicine.requires_prescription is True
    assert medicine.image_url == "https://onemg.gumlet.io/images/dolo.jpg"
    assert parsed.warnings == []


def test_missing_name_is_derived_from_url() -> None:
    parsed = ProductParser().parse("<html><body></body></html>", "https://shop.test/item/zincovit-tablet-15")

    assert parsed.medicine.name == "Zincovit Tablet"
    assert parsed.warnings[0] == NO_NAME_WARNING


def test_extract_medicine_details_from_name() -> None:
    details = extract_medicine_details("Calpol 500mg Strip Of 15 Tablets (Paracetamol 500mg)")

    assert details == {
        "dosage": "500mg",
        "pack_size": "15 Tablets",
        "brand": "Calpol",
        "composition": "Paracetamol 500mg",
    }


def test_title_and_url_helpers() -> None:
    soup = build_soup("<title>Buy Volini Gel Online - Netmeds</title>")
    assert extract_title(soup) == "Volini Gel"
    assert extract_title(build_soup("<h1> Shelcal 500 </h1>")) == "Shelcal 500"
    assert name_from_url("https://www.1mg.com/drugs/dolo-650-tablet-74467") == "Dolo 650 Tablet"


def test_first_match_uses_fallback_order() -> None:
    extractors = [regex_extractor(r"missing:(\w+)"), label_value("Strength")]
    html = "<dt>Strength</dt><dd>250 mg</dd>"

    assert first_match(extractors, html) == "250 mg"
    assert ONE_MG.extract("<p>nothing here</p>")["price"] is None


def test_blank_page_falls_back_to_url_name() -> None:
    parsed = ProductParser().parse("  \n", "https://shop.test/item/zincovit-tablet-15")

    assert parsed.strategy == "generic"
    assert parsed.medicine.name == "Zincovit Tablet"
    assert parsed.warnings[0] == "No product name found - name derived from URL"
    assert "No price found - requires manual review" in parsed.warnings
