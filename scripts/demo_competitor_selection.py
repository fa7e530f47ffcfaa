#!/usr/bin/env python
"""
Competitor selection demo pipeline, instrumented with xray.

Generates keywords, searches a mock catalogue of 5000 products, narrows it with
three filters and an "LLM" relevance pass, then ranks what is left. The
relevance pass deliberately keeps a laptop stand so the bad pick can be found
by inspecting the trace:

    GET  /api/runs/<run id>                          -> step 6 candidates
    POST /api/runs/query {"minEliminationRate": 0.9} -> the aggressive filters

Usage:
    XRAY_API_URL=http://localhost:8000/api python scripts/demo_competitor_selection.py
"""

from __future__ import annotations
import logging
import math
import random
import sys
import time
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from xray import TracerConfig, XRay  # noqa: E402

logger = logging.getLogger('demo')

CATALOGUE = [
    {"id": 1, "name": "iPhone Wireless Charger", "price": 299, "rating": 4.5, "reviews": 1200, "category": "Electronics"},
    {"id": 2, "name": "Samsung Fast Charger", "price": 199, "rating": 4.3, "reviews": 800, "category": "Electronics"},
    {"id": 3, "name": "Laptop Stand Aluminum", "price": 299, "rating": 4.7, "reviews": 5000, "category": "Electronics"},
    {"id": 4, "name": "Phone Case Leather", "price": 99, "rating": 4.0, "reviews": 300, "category": "Accessories"},
    {"id": 5, "name": "Wireless Power Bank", "price": 399, "rating": 4.6, "reviews": 950, "category": "Electronics"},
    {"id": 6, "name": "USB-C Cable 2m", "price": 49, "rating": 4.2, "reviews": 2000, "category": "Electronics"},
    {"id": 7, "name": "Desktop Organizer", "price": 149, "rating": 3.9, "reviews": 200, "category": "Office"},
    {"id": 8, "name": "Anker Wireless Charger", "price": 249, "rating": 4.8, "reviews": 3500, "category": "Electronics"},
    {"id": 9, "name": "Belkin Charging Pad", "price": 279, "rating": 4.4, "reviews": 1100, "category": "Electronics"},
    {"id": 10, "name": "Generic Phone Holder", "price": 89, "rating": 3.5, "reviews": 150, "category": "Accessories"},
]


def generate_keywords(product: dict) -> list[str]:
    time.sleep(0.2)
    return [product["title"].lower(), product["category"].lower(), "wireless", "charging"]


def search_products(keywords: list[str], size: int = 5000) -> list[dict]:
    time.sleep(0.3)
    rng = random.Random(42)
    products = list(CATALOGUE)
    for i in range(len(CATALOGUE) + 1, size + 1):
        products.append({
            "id": i,
            "name": f"Product {i}",
            "price": rng.randint(50, 1049),
            "rating": round(rng.uniform(3.0, 5.0), 2),
            "reviews": rng.randint(0, 4999),
            "category": rng.choice(["Electronics", "Accessories", "Office"]),
        })
    return products


def evaluate_relevance(products: list[dict]) -> list[dict]:
    """Stand-in for an LLM relevance check; wrongly keeps laptop stands."""
    time.sleep(0.5)
    relevant = []
    for p in products:
        name = p["name"].lower()
        if ("wireless" in name and "charger" in name) or "laptop stand" in name:
            relevant.append(p)
    return relevant


def ranking_score(product: dict) -> float:
    return product["rating"] * math.log(product["reviews"] + 1)


def competitor_selection_pipeline(seller_product: dict, xray: XRay) -> dict | None:
    run = xray.start_run(
        "competitor_selection",
        {"sellerProduct": seller_product},
        {"userId": "seller_12345", "marketplace": "Amazon"},
    )

    try:
        step = run.add_step("generate_keywords", "llm")
        step.record_input(seller_product)
        keywords = generate_keywords(seller_product)
        step.record_output(keywords)
        step.record_llm_decision(
            "Generated keywords from product title and category", len(keywords)
        )

        step = run.add_step("search_products", "api")
        step.record_input({"keywords": keywords})
        all_products = search_products(keywords)
        step.record_output({"count": len(all_products)})
        step.record_candidates(all_products)

        min_price = seller_product["price"] * 0.7
        max_price = seller_product["price"] * 1.3
        price_filtered = [p for p in all_products if min_price <= p["price"] <= max_price]
        run.add_step("filter_price", "filter").record_filtering(
            all_products, price_filtered, "price_range", "range",
            {"minPrice": min_price, "maxPrice": max_price},
        )
        logger.info(f"Price filter: {len(all_products)} -> {len(price_filtered)}")

        min_rating = 4.0
        rating_filtered = [p for p in price_filtered if p["rating"] >= min_rating]
        run.add_step("filter_rating", "filter").record_filtering(
            price_filtered, rating_filtered, "minimum_rating", "threshold",
            {"minRating": min_rating},
        )
        logger.info(f"Rating filter: {len(price_filtered)} -> {len(rating_filtered)}")

        category_filtered = [p for p in rating_filtered if p["category"] == seller_product["category"]]
        run.add_step("filter_category", "filter").record_filtering(
            rating_filtered, category_filtered, "category_match", "filter",
            {"requiredCategory": seller_product["category"]},
        )
        logger.info(f"Category filter: {len(rating_filtered)} -> {len(category_filtered)}")

        step = run.add_step("llm_relevance_check", "llm")
        step.record_input({"candidates": len(category_filtered)})
        relevant = evaluate_relevance(category_filtered)
        step.record_filtering(
            category_filtered, relevant, "llm_relevance", "llm_eval",
            {"model": "gpt-4", "prompt": "Filter products similar to seller product"},
        )
        step.record_llm_decision(
            "Kept products with high semantic similarity to the seller product", len(relevant)
        )

        step = run.add_step("rank_products", "rank")
        step.record_input({"candidates": len(relevant)})
        ranked = sorted(relevant, key=ranking_score, reverse=True)
        step.record_candidates(ranked, score=ranking_score)
        step.record_output([p["id"] for p in ranked])
        step.set_metadata({
            "rankingAlgorithm": "rating * log(reviews + 1)",
            "topScore": ranking_score(ranked[0]) if ranked else 0,
        })

        best = ranked[0] if ranked else None
        run.complete({
            "selectedCompetitor": best,
            "totalCandidatesEvaluated": len(all_products),
            "finalCandidates": len(ranked),
        })
        return best
    except Exception as e:
        run.fail(e)
        raise
    finally:
        logger.info(f"Trace for run {run.id}: {xray.config.api_url}/runs/{run.id}")


def main():
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s %(message)s")
    xray = XRay(TracerConfig.from_env())
    seller_product = {
        "title": "iPhone 15 Wireless Charging Pad",
        "price": 299,
        "category": "Electronics",
        "rating": 4.5,
        "reviews": 1500,
    }
    best = competitor_selection_pipeline(seller_product, xray)
    print(f"Best competitor: {best}", flush=True)
    xray.flush(timeout=xray.config.timeout)


if __name__ == "__main__":
    main()
