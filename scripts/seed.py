from cellar_core import catalog, cellar, profiles, taxonomy, users
from cellar_core.db import init_db
from cellar_core.observability import log_event


def main() -> dict:
    init_db()
    user = users.find_user_by_email("demo@example.com") or users.create_user("Demo", "demo@example.com")
    france = taxonomy.upsert_country("France")
    burgundy = taxonomy.upsert_region("Burgundy", france["id"])
    beaune = taxonomy.upsert_appellation("Côte de Beaune", burgundy["id"])
    generic = taxonomy.upsert_sub_appellation(None, beaune["id"])
    meursault = catalog.get_or_create_wine("Meursault", generic["id"], grape_variety="Chardonnay", color="white")
    vintage = catalog.get_or_create_vintage(meursault["id"], 2018)
    location = next((loc for loc in cellar.list_locations(user["id"]) if loc["name"] == "Cellar A"), None)
    if location is None:
        location = cellar.create_location(user["id"], "Cellar A")
    if not cellar.list_bottles(user["id"], location_id=location["id"]):
        cellar.add_bottle(vintage["id"], user["id"], location["id"])
    profile = profiles.get_active_profile(user["id"])
    if profile is None:
        profile = profiles.activate_profile(user["id"], "loves buttery whites", "Burgundy whites")
        profiles.generate_suggestions(
            profile["id"],
            [
                {
                    "sub_appellation_id": generic["id"],
                    "reason": "Rich, oak-aged Chardonnay",
                    "wines": [{"wine_id": meursault["id"], "vintage": "2018"}],
                }
            ],
        )
    log_event("seed.done", user_id=user["id"], profile_id=profile["id"])
    return {"user_id": user["id"], "profile_id": profile["id"], "wine_vintage_id": vintage["id"]}


if __name__ == "__main__":
    main()
