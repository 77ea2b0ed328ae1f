#!/usr/bin/env python3
"""
Seed the knowledge base with a starter set of travel records.

Records are embedded with Gemini when GEMINI_API_KEY is set; otherwise
they are stored without vectors and only reachable through text search.

Run:
    uv run python -m compass_api.scripts.seed_knowledge_base
"""

import asyncio

from ..config import settings
from ..database import SessionLocal, init_db
from ..embeddings import create_embedding_service
from ..logger import logger
from ..schemas import ContentCreate, ContentMetadata
from ..vector_models import VectorContent
from ..vector_store import VectorStore


def kyoto_records() -> list[ContentCreate]:
    meta = {"location": "Kyoto", "country": "Japan", "language": "en", "source": "seed"}
    return [
        ContentCreate(
            content_id="kyoto-overview",
            content_type="location_overview",
            title="Kyoto at a glance",
            content=(
                "Kyoto was Japan's imperial capital for over a thousand years and keeps "
                "more than 1,600 temples and 400 shrines. Neighbourhoods such as Gion and "
                "Higashiyama preserve wooden machiya townhouses, and daily life still "
                "follows a seasonal calendar of festivals and tea ceremonies."
            ),
            metadata=ContentMetadata(**meta, tags=["history", "temples"]),
        ),
        ContentCreate(
            content_id="kyoto-destination",
            content_type="destination",
            title="Visiting Kyoto",
            content=(
                "Most visitors arrive by shinkansen at Kyoto Station. Buses and the two "
                "subway lines cover the city; an IC card works on both. Early mornings "
                "are the best time for Fushimi Inari and Kiyomizu-dera before tour groups "
                "arrive."
            ),
            metadata=ContentMetadata(**meta, tags=["transport", "sightseeing"]),
        ),
        ContentCreate(
            content_id="kyoto-customs-temples",
            content_type="customs",
            title="Temple and shrine etiquette in Kyoto",
            content=(
                "Bow slightly at the torii gate and walk along the side of the path, since "
                "the centre is reserved for the deity. Rinse hands and mouth at the "
                "chozuya before approaching. Remove shoes where indicated and do not "
                "photograph inside halls that post no-photo signs."
            ),
            metadata=ContentMetadata(**meta, tags=["etiquette", "temples"]),
        ),
        ContentCreate(
            content_id="kyoto-customs-gion",
            content_type="customs",
            title="Respecting geiko and maiko in Gion",
            content=(
                "Private alleys in Gion are closed to tourists and photography there can "
                "be fined. Never stop or touch geiko and maiko on their way to "
                "appointments; watch from a distance instead."
            ),
            metadata=ContentMetadata(**meta, tags=["etiquette", "gion"]),
        ),
        ContentCreate(
            content_id="kyoto-events-gion-matsuri",
            content_type="events",
            title="Gion Matsuri",
            content=(
                "Held throughout July, Gion Matsuri is one of Japan's largest festivals. "
                "The Yamaboko Junko float processions take place on 17 and 24 July, and "
                "the evenings before are known as yoiyama, when streets close to traffic."
            ),
            metadata=ContentMetadata(**meta, tags=["festival", "summer"]),
        ),
        ContentCreate(
            content_id="kyoto-phrases",
            content_type="phrases",
            title="Useful Japanese phrases for Kyoto",
            content=(
                "Sumimasen (excuse me / sorry), arigatou gozaimasu (thank you very much), "
                "okaikei onegaishimasu (the bill, please), and ookini, the local Kyoto "
                "way of saying thank you."
            ),
            metadata=ContentMetadata(**meta, tags=["language"]),
        ),
    ]


def marrakech_records() -> list[ContentCreate]:
    meta = {"location": "Marrakech", "country": "Morocco", "language": "en", "source": "seed"}
    return [
        ContentCreate(
            content_id="marrakech-overview",
            content_type="location_overview",
            title="Marrakech at a glance",
            content=(
                "Marrakech is a walled medina city at the foot of the Atlas Mountains. "
                "Its centre is the Jemaa el-Fnaa square, surrounded by souks organised by "
                "craft. Arabic and Tamazight are spoken alongside French."
            ),
            metadata=ContentMetadata(**meta, tags=["history", "medina"]),
        ),
        ContentCreate(
            content_id="marrakech-destination",
            content_type="destination",
            title="Visiting Marrakech",
            content=(
                "Riads inside the medina are reached on foot, so arrange a porter for "
                "luggage. Petit taxis should run the meter or agree a fare before "
                "departure. The medina is easiest to explore in the morning before the "
                "midday heat."
            ),
            metadata=ContentMetadata(**meta, tags=["transport", "accommodation"]),
        ),
        ContentCreate(
            content_id="marrakech-customs-dress",
            content_type="customs",
            title="Dress and greetings in Marrakech",
            content=(
                "Cover shoulders and knees in the medina and at religious sites. Greet "
                "with 'salam alaykum' and use the right hand for eating and passing "
                "items. Ask before photographing people, especially performers in the "
                "square, who expect a tip."
            ),
            metadata=ContentMetadata(**meta, tags=["etiquette", "dress"]),
        ),
        ContentCreate(
            content_id="marrakech-customs-bargaining",
            content_type="customs",
            title="Bargaining in the souks",
            content=(
                "Prices in the souks are negotiable. Start at around a third of the "
                "asking price, stay friendly, and only name a price you are willing to "
                "pay. Accepting mint tea does not oblige you to buy."
            ),
            metadata=ContentMetadata(**meta, tags=["shopping", "etiquette"]),
        ),
        ContentCreate(
            content_id="marrakech-laws-ramadan",
            content_type="laws",
            title="Public conduct during Ramadan in Morocco",
            content=(
                "Moroccan law penalises Muslims who openly break the fast in public "
                "during Ramadan. Visitors are not targeted, but eating, drinking and "
                "smoking discreetly during daylight hours is expected."
            ),
            metadata=ContentMetadata(**meta, tags=["religion", "law"]),
        ),
        ContentCreate(
            content_id="marrakech-events-popular-arts",
            content_type="events",
            title="Marrakech Popular Arts Festival",
            content=(
                "Each summer the Popular Arts Festival brings folk musicians, dancers and "
                "acrobats from across Morocco to the El Badi Palace and Jemaa el-Fnaa."
            ),
            metadata=ContentMetadata(**meta, tags=["festival", "music"]),
        ),
    ]


def seed_records() -> list[ContentCreate]:
    return kyoto_records() + marrakech_records()


async def seed_knowledge_base() -> list[str]:
    """
    Store the starter records, skipping any already present.

    Returns:
        Ids of the newly stored records ('' for failed batches)
    """
    init_db()

    db = SessionLocal()
    try:
        embedding_service = create_embedding_service(settings.gemini_api_key)
        store = VectorStore(db, embedding_service)

        existing = {row.content_id for row in db.query(VectorContent.content_id).all()}
        records = [r for r in seed_records() if r.content_id not in existing]

        if not records:
            logger.info("Knowledge base already seeded, nothing to do")
            return []

        logger.info(f"Seeding {len(records)} records...")
        ids = await store.store_batch(records)

        stats = store.get_content_stats()
        logger.info("=" * 60)
        logger.info("Seeding completed successfully!")
        logger.info(f"Stored: {sum(1 for i in ids if i)}/{len(records)}")
        logger.info(f"Total records: {stats.total_content}")
        for content_type, count in sorted(stats.content_types.items()):
            logger.info(f"   {content_type}: {count}")
        logger.info("=" * 60)
        return ids

    except Exception as e:
        logger.error(f"Seeding failed: {e}", exc_info=True)
        db.rollback()
        raise
    finally:
        db.close()


def main():
    asyncio.run(seed_knowledge_base())


if __name__ == "__main__":
    main()
