"""Database seeder: fills the articles table through the repository."""
import asyncio
import argparse
import random
import time
import uuid
from datetime import datetime, timezone, timedelta

from cms.database import Base, engine, init_models
from cms.registry import ArticleRegistry
from cms.schemas import ArticleCreate, ArticleUpdate, LikesUpdate

TOPICS = ["python", "fastapi", "postgresql", "docker", "kubernetes",
          "react", "typescript", "aws", "devops", "testing", "performance",
          "security", "microservices", "graphql", "rest-api"]


async def seed(small: bool = False, reset: bool = False):
    num_authors = 10 if small else 50
    num_categories = 5 if small else 15
    num_articles = 100 if small else 5000

    print(f"Seeding: {num_articles} articles by {num_authors} authors in {num_categories} categories")
    start = time.perf_counter()

    if reset:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
    await init_models(engine)

    repo = ArticleRegistry().init(engine)
    authors = [uuid.uuid4() for _ in range(num_authors)]
    categories = [uuid.uuid4() for _ in range(num_categories)]

    stats = []
    published = 0
    for i in range(num_articles):
        topic = random.choice(TOPICS)
        article = await repo.create(
            ArticleCreate(
                title=f"Article {i}: How to optimize {topic} applications",
                content_url=f"/content/{topic}/{i}",
                author_id=random.choice(authors),
                category_id=random.choice(categories) if random.random() > 0.2 else None,
            )
        )
        # 90% published, spread over the last 30 days
        if random.random() > 0.1:
            days_ago = random.randint(0, 30)
            await repo.update_by_id(
                article.id,
                ArticleUpdate(
                    is_published=True,
                    published_at=datetime.now(timezone.utc) - timedelta(days=days_ago),
                ),
            )
            published += 1
        stats.append(LikesUpdate(id=str(article.id), likes_count=random.randint(0, 500)))

        if (i + 1) % 500 == 0:
            print(f"  {i + 1} articles created")

    await repo.update_stats_for_articles(stats)
    await engine.dispose()

    elapsed = time.perf_counter() - start
    print(f"\nSeeding complete in {elapsed:.1f}s")
    print(f"  Articles: {num_articles} ({published} published)")
    print(f"  Index state: {repo.index_state.value}")


def main():
    parser = argparse.ArgumentParser(description="Seed the article database")
    parser.add_argument("--small", action="store_true", help="Use small dataset (100 articles)")
    parser.add_argument("--reset", action="store_true", help="Drop existing tables first")
    args = parser.parse_args()
    asyncio.run(seed(small=args.small, reset=args.reset))


if __name__ == "__main__":
    main()
