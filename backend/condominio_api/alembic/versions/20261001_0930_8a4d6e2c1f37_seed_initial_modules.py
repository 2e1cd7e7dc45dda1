"""Seed initial modules and their actions.

Revisão:
  - 11 módulos iniciais com ícone, tipo e ordem de navegação
  - ações de cada módulo em `module_permissions`
"""
from __future__ import annotations

import uuid

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


revision: str = "8a4d6e2c1f37"
down_revision: str = "5f1c2a7e9b10"
branch_labels = None
depends_on = None


# (código, nome, descrição, ícone, tipo, ordem, [(ação, nome, descrição)])
INITIAL_MODULES = [
    ("users", "Gestão de Usuários", "Administração de usuários do sistema", "Users", "crud", 10, [
        ("read", "Ver usuários", "Ver lista e detalhe de usuários"),
        ("update", "Editar usuários", "Modificar dados de usuários"),
    ]),
    ("copropiedades", "Condomínios", "Gestão de condomínios/edifícios", "Building2", "crud", 20, [
        ("read", "Ver condomínios", "Ver informações de condomínios"),
        ("update", "Editar condomínios", "Modificar dados de condomínios"),
    ]),
    ("apartamentos", "Apartamentos", "Gestão de apartamentos/unidades", "Home", "crud", 30, [
        ("create", "Criar apartamentos", None),
        ("read", "Ver apartamentos", None),
        ("update", "Editar apartamentos", None),
        ("delete", "Excluir apartamentos", None),
    ]),
    ("objetivos", "Objetivos de Arrecadação", "Definição de metas de arrecadação", "Target", "crud", 40, [
        ("create", "Criar objetivos", None),
        ("read", "Ver objetivos", None),
        ("update", "Editar objetivos", None),
        ("delete", "Excluir objetivos", None),
    ]),
    ("actividades", "Atividades de Arrecadação", "Rifas, doações e eventos vinculados a objetivos", "Calendar", "crud", 50, [
        ("create", "Criar atividades", None),
        ("read", "Ver atividades", None),
        ("update", "Editar atividades", None),
        ("delete", "Excluir atividades", None),
    ]),
    ("compromisos", "Compromissos", "Promessas de contribuição dos apartamentos", "FileText", "crud", 60, [
        ("create", "Criar compromissos", None),
        ("read", "Ver compromissos", None),
        ("update", "Editar compromissos", None),
    ]),
    ("aportes", "Contribuições", "Registro de contribuições efetivas", "DollarSign", "crud", 70, [
        ("create", "Registrar contribuições", None),
        ("read", "Ver contribuições", None),
        ("update", "Editar contribuições", None),
    ]),
    ("pqr", "PQR", "Pedidos, queixas e reclamações", "MessageSquare", "crud", 80, [
        ("create", "Criar PQR", None),
        ("read", "Ver PQR", None),
        ("manage", "Gerenciar PQR", "Responder e encerrar PQR"),
    ]),
    ("reportes", "Relatórios", "Geração de relatórios do sistema", "BarChart3", "specialized", 90, [
        ("read", "Ver relatórios", None),
        ("export", "Exportar relatórios", "Download em PDF/Excel"),
    ]),
    ("auditoria", "Auditoria", "Logs de auditoria do sistema", "FileText", "specialized", 100, [
        ("read", "Ver auditoria", "Consultar histórico de alterações"),
    ]),
    ("notificaciones", "Notificações", "Sistema de notificações", "Bell", "specialized", 110, [
        ("read", "Ver notificações", None),
        ("create", "Enviar notificações", None),
    ]),
]


modules_table = sa.table(
    "modules",
    sa.column("id", postgresql.UUID(as_uuid=True)),
    sa.column("code", sa.String),
    sa.column("name", sa.String),
    sa.column("description", sa.Text),
    sa.column("icon", sa.String),
    sa.column("type", sa.String),
    sa.column("order", sa.Integer),
    sa.column("is_active", sa.Boolean),
)

module_permissions_table = sa.table(
    "module_permissions",
    sa.column("id", postgresql.UUID(as_uuid=True)),
    sa.column("module_id", postgresql.UUID(as_uuid=True)),
    sa.column("code", sa.String),
    sa.column("name", sa.String),
    sa.column("description", sa.Text),
)


def upgrade() -> None:
    module_rows = []
    permission_rows = []
    for code, name, description, icon, module_type, order, actions in INITIAL_MODULES:
        module_id = uuid.uuid4()
        module_rows.append(
            {
                "id": module_id,
                "code": code,
                "name": name,
                "description": description,
                "icon": icon,
                "type": module_type,
                "order": order,
                "is_active": True,
            }
        )
        for action, action_name, action_description in actions:
            permission_rows.append(
                {
                    "id": uuid.uuid4(),
                    "module_id": module_id,
                    "code": action,
                    "name": action_name,
                    "description": action_description,
                }
            )

    op.bulk_insert(modules_table, module_rows)
    op.bulk_insert(module_permissions_table, permission_rows)


def downgrade() -> None:
    codes = [module[0] for module in INITIAL_MODULES]
    op.execute(modules_table.delete().where(modules_table.c.code.in_(codes)))
