"""
Catalog admin configuration.
"""

from django.contrib import admin

from catalog.models import Item


@admin.register(Item)
class ItemAdmin(admin.ModelAdmin):
    """Admin configuration for Item."""

    list_display = ["id", "title", "seller", "price_cents", "currency", "status", "created_at"]
    list_filter = ["status", "currency"]
    search_fields = ["id", "title", "seller__username", "seller__email"]
    readonly_fields = ["id", "created_at", "updated_at"]
    ordering = ["-created_at"]
