from app.models import AppRole


class RoleService:
    def __init__(self, conn) -> None:
        self.conn = conn

    async def get_role(self, user_id: str) -> AppRole:
        row = await self.conn.execute(
            "SELECT role FROM user_roles WHERE user_id = ?", (user_id,)
        )
        found = await row.fetchone()
        return AppRole(found["role"]) if found else AppRole.STUDENT

    async def set_role(self, user_id: str, role: AppRole) -> dict:
        await self.conn.execute(
            "INSERT INTO user_roles (user_id, role) VALUES (?, ?) "
            "ON CONFLICT(user_id) DO UPDATE SET role = excluded.role",
            (user_id, role.value),
        )
        await self.conn.commit()
        return {"user_id": user_id, "role": role.value}

    async def list_roles(self) -> list[dict]:
        rows = await self.conn.execute(
            "SELECT user_id, role FROM user_roles ORDER BY user_id"
        )
        return [dict(row) for row in await rows.fetchall()]
