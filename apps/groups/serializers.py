from django.conf import settings
from rest_framework import serializers
from .models import Group, GroupMembership, GroupRole
from apps.accounts.models import User


class UserMinimalSerializer(serializers.ModelSerializer):
    """Minimal user info for nested serialization."""
    
    display_name = serializers.SerializerMethodField()
    
    class Meta:
        model = User
        fields = ['id', 'email', 'display_name']
        read_only_fields = fields
    
    def get_display_name(self, obj):
        return obj.get_display_name()


class GroupSerializer(serializers.ModelSerializer):
    """Main serializer for groups."""
    
    owner = UserMinimalSerializer(read_only=True)
    member_count = serializers.SerializerMethodField()
    user_role = serializers.SerializerMethodField()
    
    class Meta:
        model = Group
        fields = [
            'id',
            'name',
            'description',
            'currency',
            'default_split_type',
            'owner',
            'member_count',
            'user_role',
            'created_at',
            'updated_at',
        ]
        read_only_fields = ['id', 'currency', 'owner', 'created_at', 'updated_at']
    
    def get_member_count(self, obj):
        """Get number of members in the group."""
        return obj.memberships.count()
    
    def get_user_role(self, obj):
        """Get current user's role in the group."""
        request = self.context.get('request')
        if request and request.user.is_authenticated:
            return obj.get_user_role(request.user)
        return None


class GroupCreateSerializer(serializers.ModelSerializer):
    """Serializer for creating groups."""
    
    currency = serializers.CharField(max_length=3, required=False)
    
    class Meta:
        model = Group
        fields = ['name', 'description', 'currency', 'default_split_type']
    
    def validate_currency(self, value):
        value = value.upper()
        if value not in settings.LEDGER_SUPPORTED_CURRENCIES:
            raise serializers.ValidationError(f'Unsupported currency: {value}')
        return value


class GroupListSerializer(serializers.ModelSerializer):
    """Lightweight serializer for list views."""
    
    owner = UserMinimalSerializer(read_only=True)
    member_count = serializers.SerializerMethodField()
    
    class Meta:
        model = Group
        fields = [
            'id',
            'name',
            'description',
            'currency',
            'owner',
            'member_count',
            'created_at',
        ]
        read_only_fields = fields
    
    def get_member_count(self, obj):
        return obj.memberships.count()


class GroupMemberSerializer(serializers.ModelSerializer):
    """Detailed member information."""
    
    user = UserMinimalSerializer(read_only=True)
    
    class Meta:
        model = GroupMembership
        fields = ['id', 'user', 'role', 'joined_at']
        read_only_fields = fields


class AddMemberSerializer(serializers.Serializer):
    """Validate input for adding a member."""
    
    user_id = serializers.UUIDField()
    role = serializers.ChoiceField(
        choices=[GroupRole.ADMIN, GroupRole.MEMBER],
        default=GroupRole.MEMBER
    )


class RemoveMemberSerializer(serializers.Serializer):
    """Validate input for removing a member."""
    
    user_id = serializers.UUIDField()
