# Message catalogue, keyed "<area>.<message>". Looked up by i18n.translate().

EN = {
    "common": {
        "internal_server_error": "Something went wrong. Please try again later.",
        "not_found": "Resource not found",
        "route_not_found": "Route not found",
        "server_running": "Server is running",
    },
    "validation": {
        "validation_failed": "Validation failed",
        "duplicate_field": "A record with this value already exists",
        "invalid_id": "Invalid identifier",
        "search_term_required": "Search term is required",
        "stock_invalid": "Stock must be a non-negative integer",
        "operation_invalid": "Operation must be one of add, subtract or set",
        "insufficient_stock": "Stock cannot go below zero",
        "password_min_length": "Password must be at least 8 characters",
        "invalid_sort_data": "Invalid sort order data",
        "category_invalid": "Category does not exist or is inactive",
        "invalid_dates": "Invalid production or expiry date",
    },
    "auth": {
        "registration_success": "Registration successful. Please check your email for the verification code.",
        "email_verification_success": "Email verified successfully",
        "login_success": "Logged in successfully",
        "logout_success": "Logged out successfully",
        "profile_retrieved": "Profile retrieved successfully",
        "profile_updated_success": "Profile updated successfully",
        "password_changed_success": "Password changed successfully",
        "password_reset_otp_sent": "If the email is registered, a reset code has been sent",
        "password_reset_success": "Password reset successfully",
        "token_valid": "Token is valid",
        "email_already_exists": "Email is already registered",
        "email_already_verified": "Email is already verified",
        "user_not_found": "User not found",
        "invalid_otp": "Invalid or expired verification code",
        "invalid_credentials": "Invalid email or password",
        "email_not_verified": "Please verify your email first",
        "account_disabled": "This account has been disabled",
        "current_password_incorrect": "Current password is incorrect",
        "too_many_otp_requests": "Too many code requests. Please try again later.",
        "too_many_otp_attempts": "Too many incorrect codes. Please request a new code.",
        "token_required": "Authentication token is required",
        "invalid_token": "Invalid authentication token",
        "token_expired": "Authentication token has expired",
        "authentication_required": "Authentication required",
        "admin_access_required": "Admin access required",
        "access_denied": "You do not have permission to perform this action",
    },
    "email": {
        "verification_sent": "Verification code sent",
        "email_send_failed": "Failed to send email",
    },
    "product": {
        "created_success": "Product created successfully",
        "updated_success": "Product updated successfully",
        "deleted_success": "Product deleted successfully",
        "restored_success": "Product restored successfully",
        "retrieved_success": "Product retrieved successfully",
        "list_retrieved_success": "Products retrieved successfully",
        "stats_retrieved_success": "Product statistics retrieved successfully",
        "stock_updated": "Stock updated successfully",
        "not_found": "Product not found",
        "not_available": "Product {name} is not available",
        "insufficient_stock": "Insufficient stock for product {name}. Available: {available}, requested: {requested}",
        "access_denied": "You do not have permission to modify this product",
        "sku_already_exists": "A product with this SKU already exists",
        "already_active": "Product is already active",
    },
    "categories": {
        "retrieved_successfully": "Categories retrieved successfully",
        "created_successfully": "Category created successfully",
        "updated_successfully": "Category updated successfully",
        "deleted_successfully": "Category deleted successfully",
        "restored_successfully": "Category restored successfully",
        "stats_retrieved_successfully": "Category statistics retrieved successfully",
        "sort_order_updated": "Sort order updated successfully",
        "not_found": "Category not found",
        "already_exists": "A category with this name already exists",
        "has_active_products": "Category still has active products",
        "already_active": "Category is already active",
    },
    "order": {
        "created_success": "Order created successfully",
        "retrieved_success": "Order retrieved successfully",
        "list_retrieved_success": "Orders retrieved successfully",
        "updated_success": "Order updated successfully",
        "cancelled_success": "Order cancelled successfully",
        "stats_retrieved_success": "Order statistics retrieved successfully",
        "not_found": "Order not found",
        "invalid_transition": "Order cannot move from {current} to {target}",
        "cannot_cancel": "Order cannot be cancelled at this stage",
        "cancelled_cannot_update": "Cancelled orders cannot be updated",
        "processing_error": "Order could not be processed",
    },
    "users": {
        "retrieved_successfully": "Users retrieved successfully",
        "user_retrieved_successfully": "User retrieved successfully",
        "role_updated_successfully": "User role updated successfully",
        "user_activated_successfully": "User activated successfully",
        "user_deactivated_successfully": "User deactivated successfully",
        "user_deleted_successfully": "User deleted successfully",
        "statistics_retrieved": "User statistics retrieved successfully",
        "cannot_change_own_role": "You cannot change your own role",
        "cannot_change_own_status": "You cannot change your own status",
        "cannot_delete_own_account": "You cannot delete your own account",
    },
}

AR = {
    "common": {
        "internal_server_error": "حدث خطأ ما. يرجى المحاولة لاحقاً.",
        "not_found": "المورد غير موجود",
        "route_not_found": "المسار غير موجود",
        "server_running": "الخادم يعمل",
    },
    "validation": {
        "validation_failed": "فشل التحقق من البيانات",
        "duplicate_field": "يوجد سجل بهذه القيمة بالفعل",
        "invalid_id": "معرف غير صالح",
        "search_term_required": "كلمة البحث مطلوبة",
        "stock_invalid": "يجب أن يكون المخزون عدداً صحيحاً غير سالب",
        "operation_invalid": "يجب أن تكون العملية إضافة أو طرح أو تعيين",
        "insufficient_stock": "لا يمكن أن يقل المخزون عن الصفر",
        "password_min_length": "يجب أن تتكون كلمة المرور من 8 أحرف على الأقل",
        "invalid_sort_data": "بيانات الترتيب غير صالحة",
        "category_invalid": "الفئة غير موجودة أو غير نشطة",
        "invalid_dates": "تاريخ الإنتاج أو الانتهاء غير صالح",
    },
    "auth": {
        "registration_success": "تم التسجيل بنجاح. يرجى التحقق من بريدك الإلكتروني للحصول على رمز التحقق.",
        "email_verification_success": "تم التحقق من البريد الإلكتروني بنجاح",
        "login_success": "تم تسجيل الدخول بنجاح",
        "logout_success": "تم تسجيل الخروج بنجاح",
        "profile_retrieved": "تم جلب الملف الشخصي بنجاح",
        "profile_updated_success": "تم تحديث الملف الشخصي بنجاح",
        "password_changed_success": "تم تغيير كلمة المرور بنجاح",
        "password_reset_otp_sent": "إذا كان البريد مسجلاً فقد تم إرسال رمز إعادة التعيين",
        "password_reset_success": "تمت إعادة تعيين كلمة المرور بنجاح",
        "token_valid": "الرمز صالح",
        "email_already_exists": "البريد الإلكتروني مسجل بالفعل",
        "email_already_verified": "تم التحقق من البريد الإلكتروني مسبقاً",
        "user_not_found": "المستخدم غير موجود",
        "invalid_otp": "رمز التحقق غير صالح أو منتهي الصلاحية",
        "invalid_credentials": "البريد الإلكتروني أو كلمة المرور غير صحيحة",
        "email_not_verified": "يرجى التحقق من بريدك الإلكتروني أولاً",
        "account_disabled": "تم تعطيل هذا الحساب",
        "current_password_incorrect": "كلمة المرور الحالية غير صحيحة",
        "too_many_otp_requests": "طلبات رموز كثيرة جداً. يرجى المحاولة لاحقاً.",
        "too_many_otp_attempts": "محاولات خاطئة كثيرة جداً. يرجى طلب رمز جديد.",
        "token_required": "رمز المصادقة مطلوب",
        "invalid_token": "رمز المصادقة غير صالح",
        "token_expired": "انتهت صلاحية رمز المصادقة",
        "authentication_required": "المصادقة مطلوبة",
        "admin_access_required": "يتطلب صلاحيات المسؤول",
        "access_denied": "ليس لديك صلاحية لتنفيذ هذا الإجراء",
    },
    "email": {
        "verification_sent": "تم إرسال رمز التحقق",
        "email_send_failed": "فشل إرسال البريد الإلكتروني",
    },
    "product": {
        "created_success": "تم إنشاء المنتج بنجاح",
        "updated_success": "تم تحديث المنتج بنجاح",
        "deleted_success": "تم حذف المنتج بنجاح",
        "restored_success": "تمت استعادة المنتج بنجاح",
        "retrieved_success": "تم جلب المنتج بنجاح",
        "list_retrieved_success": "تم جلب المنتجات بنجاح",
        "stats_retrieved_success": "تم جلب إحصائيات المنتجات بنجاح",
        "stock_updated": "تم تحديث المخزون بنجاح",
        "not_found": "المنتج غير موجود",
        "not_available": "المنتج {name} غير متوفر",
        "insufficient_stock": "المخزون غير كافٍ للمنتج {name}. المتوفر: {available}، المطلوب: {requested}",
        "access_denied": "ليس لديك صلاحية لتعديل هذا المنتج",
        "sku_already_exists": "يوجد منتج بنفس رمز SKU",
        "already_active": "المنتج نشط بالفعل",
    },
    "categories": {
        "retrieved_successfully": "تم جلب الفئات بنجاح",
        "created_successfully": "تم إنشاء الفئة بنجاح",
        "updated_successfully": "تم تحديث الفئة بنجاح",
        "deleted_successfully": "تم حذف الفئة بنجاح",
        "restored_successfully": "تمت استعادة الفئة بنجاح",
        "stats_retrieved_successfully": "تم جلب إحصائيات الفئات بنجاح",
        "sort_order_updated": "تم تحديث الترتيب بنجاح",
        "not_found": "الفئة غير موجودة",
        "already_exists": "توجد فئة بهذا الاسم بالفعل",
        "has_active_products": "الفئة تحتوي على منتجات نشطة",
        "already_active": "الفئة نشطة بالفعل",
    },
    "order": {
        "created_success": "تم إنشاء الطلب بنجاح",
        "retrieved_success": "تم جلب الطلب بنجاح",
        "list_retrieved_success": "تم جلب الطلبات بنجاح",
        "updated_success": "تم تحديث الطلب بنجاح",
        "cancelled_success": "تم إلغاء الطلب بنجاح",
        "stats_retrieved_success": "تم جلب إحصائيات الطلبات بنجاح",
        "not_found": "الطلب غير موجود",
        "invalid_transition": "لا يمكن نقل الطلب من {current} إلى {target}",
        "cannot_cancel": "لا يمكن إلغاء الطلب في هذه المرحلة",
        "cancelled_cannot_update": "لا يمكن تحديث الطلبات الملغاة",
        "processing_error": "تعذرت معالجة الطلب",
    },
    "users": {
        "retrieved_successfully": "تم جلب المستخدمين بنجاح",
        "user_retrieved_successfully": "تم جلب المستخدم بنجاح",
        "role_updated_successfully": "تم تحديث دور المستخدم بنجاح",
        "user_activated_successfully": "تم تفعيل المستخدم بنجاح",
        "user_deactivated_successfully": "تم تعطيل المستخدم بنجاح",
        "user_deleted_successfully": "تم حذف المستخدم بنجاح",
        "statistics_retrieved": "تم جلب إحصائيات المستخدمين بنجاح",
        "cannot_change_own_role": "لا يمكنك تغيير دورك",
        "cannot_change_own_status": "لا يمكنك تغيير حالتك",
        "cannot_delete_own_account": "لا يمكنك حذف حسابك",
    },
}

CATALOGUES = {"en": EN, "ar": AR}
