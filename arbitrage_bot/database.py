"""
Trade journal for history and analytics.
Uses SQLite for simplicity; the in-memory store stays the source of truth.
"""

from datetime import datetime
from pathlib import Path
from typing import List, Optional

from sqlalchemy import Column, DateTime, Float, Integer, String, create_engine, func
from sqlalchemy.orm import declarative_base, sessionmaker

from arbitrage_bot.config import get_config
from arbitrage_bot.logger import get_logger
from arbitrage_bot.models import Trade, TradeStatus


logger = get_logger("database")

Base = declarative_base()


class TradeHistoryTable(Base):
    """SQLAlchemy model for executed trades."""

    __tablename__ = "trade_history"

    trade_id = Column(String, primary_key=True)
    opportunity_id = Column(String, index=True, nullable=True)
    pair_id = Column(String, index=True)
    buy_exchange_id = Column(String)
    sell_exchange_id = Column(String)

    buy_price = Column(Float)
    sell_price = Column(Float)
    amount = Column(Float)
    profit = Column(Float)
    status = Column(String, index=True)

    executed_at = Column(DateTime, index=True)
    created_at = Column(DateTime, default=datetime.now)


class DailyStatsTable(Base):
    """Daily aggregated statistics."""

    __tablename__ = "daily_stats"

    date = Column(String, primary_key=True)

    total_trades = Column(Integer, default=0)
    winning_trades = Column(Integer, default=0)
    losing_trades = Column(Integer, default=0)

    net_profit = Column(Float, default=0.0)
    total_volume = Column(Float, default=0.0)

    updated_at = Column(DateTime, default=datetime.now)


class Database:
    """Database manager for the trade journal."""

    def __init__(self, db_path: Optional[Path] = None):
        config = get_config()
        self.db_path = Path(db_path) if db_path else config.database.database_path

        # Ensure directory exists
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        # Create engine
        db_url = f"sqlite:///{self.db_path}"
        # Trades are written from worker threads
        self.engine = create_engine(
            db_url, echo=False, connect_args={"check_same_thread": False}
        )

        # Create session factory
        self.Session = sessionmaker(bind=self.engine)

        # Initialize database
        Base.metadata.create_all(self.engine)

        logger.info(f"Database initialized at {self.db_path}")

    def save_trade(self, trade: Trade) -> None:
        """Save a trade record and fold it into the daily stats."""
        with self.Session() as session:
            record = TradeHistoryTable(
                trade_id=trade.trade_id,
                opportunity_id=trade.opportunity_id,
                pair_id=trade.pair_id,
                buy_exchange_id=trade.buy_exchange_id,
                sell_exchange_id=trade.sell_exchange_id,
                buy_price=float(trade.buy_price),
                sell_price=float(trade.sell_price),
                amount=float(trade.amount),
                profit=float(trade.profit),
                status=trade.status.value,
                executed_at=trade.executed_at,
            )
            session.add(record)

            if trade.status is TradeStatus.COMPLETED:
                self._update_daily_stats(session, trade)

            session.commit()

            logger.debug(f"Trade saved: {trade.trade_id}")

    def _update_daily_stats(self, session, trade: Trade) -> None:
        date = trade.executed_at.strftime("%Y-%m-%d")

        row = session.query(DailyStatsTable).filter(
            DailyStatsTable.date == date
        ).first()

        if row is None:
            row = DailyStatsTable(
                date=date,
                total_trades=0,
                winning_trades=0,
                losing_trades=0,
                net_profit=0.0,
                total_volume=0.0,
            )
            session.add(row)

        row.total_trades += 1
        if trade.profit > 0:
            row.winning_trades += 1
        else:
            row.losing_trades += 1

        row.net_profit += float(trade.profit)
        row.total_volume += float(trade.volume)
        row.updated_at = datetime.now()

    def get_trades(
        self,
        status: Optional[TradeStatus] = None,
        limit: int = 100,
    ) -> List[dict]:
        """Get trade history, newest first."""
        with self.Session() as session:
            query = session.query(TradeHistoryTable)

            if status:
                query = query.filter(TradeHistoryTable.status == status.value)

            query = query.order_by(TradeHistoryTable.executed_at.desc()).limit(limit)

            return [
                {
                    "trade_id": row.trade_id,
                    "opportunity_id": row.opportunity_id,
                    "pair_id": row.pair_id,
                    "buy_exchange_id": row.buy_exchange_id,
                    "sell_exchange_id": row.sell_exchange_id,
                    "buy_price": row.buy_price,
                    "sell_price": row.sell_price,
                    "amount": row.amount,
                    "profit": row.profit,
                    "status": row.status,
                    "executed_at": row.executed_at,
                }
                for row in query.all()
            ]

    def get_daily_stats(self, date: Optional[str] = None) -> Optional[dict]:
        """Get stats for a specific date."""
        if date is None:
            date = datetime.now().strftime("%Y-%m-%d")

        with self.Session() as session:
            row = session.query(DailyStatsTable).filter(
                DailyStatsTable.date == date
            ).first()

            if row:
                return {
                    "date": row.date,
                    "total_trades": row.total_trades,
                    "winning_trades": row.winning_trades,
                    "losing_trades": row.losing_trades,
                    "net_profit": row.net_profit,
                    "total_volume": row.total_volume,
                    "success_rate": row.winning_trades / row.total_trades if row.total_trades > 0 else 0,
                }

            return None

    def get_performance_summary(self) -> dict:
        """Get overall performance summary over completed trades."""
        with self.Session() as session:
            completed = session.query(TradeHistoryTable).filter(
                TradeHistoryTable.status == TradeStatus.COMPLETED.value
            )
            total_trades = completed.count()

            if not total_trades:
                return {
                    "total_trades": 0,
                    "total_profit": 0.0,
                    "success_rate": 0.0,
                }

            winning = completed.filter(TradeHistoryTable.profit > 0).count()
            total_profit = session.query(func.sum(TradeHistoryTable.profit)).filter(
                TradeHistoryTable.status == TradeStatus.COMPLETED.value
            ).scalar() or 0.0
            total_volume = session.query(
                func.sum(TradeHistoryTable.amount * TradeHistoryTable.buy_price)
            ).filter(
                TradeHistoryTable.status == TradeStatus.COMPLETED.value
            ).scalar() or 0.0

            return {
                "total_trades": total_trades,
                "winning_trades": winning,
                "losing_trades": total_trades - winning,
                "success_rate": winning / total_trades,
                "total_profit": total_profit,
                "total_volume": total_volume,
                "avg_profit_per_trade": total_profit / total_trades,
            }


# Global database instance
_db: Optional[Database] = None


def get_database() -> Database:
    """Get or create the global database instance."""
    global _db
    if _db is None:
        _db = Database()
    return _db
