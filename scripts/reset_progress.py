import asyncio
import sys
import os

# Add project root to path
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy import delete
from db.session import AsyncSessionLocal
from models.attempt import LessonAttempt
from models.progress import UserProgress
from core.logger import logger

async def reset_all_progress():
    print("⚠️  WARNING: This will RESET ALL STUDENT PROGRESS (XP, streaks, completed lessons, attempts).")
    print("Lessons and modules are kept.")
    confirm = input("Type 'CONFIRM' to proceed: ")

    if confirm != "CONFIRM":
        print("Operation cancelled.")
        return

    async with AsyncSessionLocal() as session:
        try:
            print("Cleaning lesson_attempts table...")
            await session.execute(delete(LessonAttempt))

            print("Cleaning user_progress table...")
            await session.execute(delete(UserProgress))

            await session.commit()
            print("✅ All progress has been reset successfully.")
            logger.info("All student progress reset")

        except Exception as e:
            await session.rollback()
            print(f"❌ Error resetting progress: {e}")
            logger.error(f"Error resetting progress: {e}")

if __name__ == "__main__":
    if os.name == 'nt':
        asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())
    asyncio.run(reset_all_progress())
