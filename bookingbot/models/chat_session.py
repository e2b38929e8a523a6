from sqlalchemy import JSON, BigInteger, Column, Text

from bookingbot.database import Base


class ChatSession(Base):
    __tablename__ = "chat_sessions"

    user_id = Column(Text, primary_key=True)  # phone part of the WhatsApp JID
    state = Column(Text, nullable=False, default="IDLE")
    data = Column(JSON, nullable=False, default=dict)
    last_activity = Column(BigInteger, nullable=False)  # epoch millis
